"""Render fragments shown to the poller once a splat is ready."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from jinja2 import Environment, FileSystemLoader, select_autoescape
from markupsafe import escape

from splatgen.core.config import Settings
from splatgen.models.splat import Artifact

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "web" / "templates"


class ViewerRenderer(Protocol):
    def render(self, artifact: Artifact) -> str: ...


class PlayCanvasViewerRenderer:
    """Renders the canvas-based 3D viewer markup."""

    def __init__(
        self,
        width: str = "100%",
        height: str = "600px",
        enable_vr: bool = True,
        enable_ar: bool = False,
        template_dir: Path = TEMPLATE_DIR,
    ) -> None:
        self.width = width
        self.height = height
        self.enable_vr = enable_vr
        self.enable_ar = enable_ar
        self._env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html"]),
        )

    def render(self, artifact: Artifact) -> str:
        template = self._env.get_template("splat_viewer.html")
        return template.render(
            artifact=artifact,
            width=self.width,
            height=self.height,
            enable_vr=self.enable_vr,
            enable_ar=self.enable_ar,
        )


class LinkRenderer:
    """Plain download link for clients that bring their own viewer."""

    def render(self, artifact: Artifact) -> str:
        return f'<a class="splat-link" href="{escape(artifact.url)}" download>{escape(artifact.uri)}</a>'


def build_renderer(settings: Settings) -> ViewerRenderer:
    """Pick the renderer named by ``settings.viewer_renderer``."""

    if settings.viewer_renderer == "link":
        return LinkRenderer()
    return PlayCanvasViewerRenderer(
        width=settings.viewer_width,
        height=settings.viewer_height,
        enable_vr=settings.enable_vr,
        enable_ar=settings.enable_ar,
    )
