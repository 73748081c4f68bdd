"""
Control panel page.
Serves the static upload form to holders of the shared secret.
"""

import json
import logging
from functools import lru_cache
from pathlib import Path

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from relay.core.auth import verify_admin_password

logger = logging.getLogger(__name__)

PANEL_TEMPLATE = Path(__file__).resolve().parent.parent / "static" / "index.html"

router = APIRouter(tags=["panel"])


@lru_cache(maxsize=1)
def load_panel_template() -> str:
    """Read the panel HTML once per process."""
    return PANEL_TEMPLATE.read_text(encoding="utf-8")


def render_panel(password: str) -> str:
    """Embed the secret so the page script can call the upload API."""
    # json.dumps gives a valid JS string literal; escape '<' so it cannot close the script tag
    literal = json.dumps(password).replace("<", "\\u003c")
    return load_panel_template().replace("__RELAY_PASS__", literal)


@router.get("/", response_class=HTMLResponse)
async def control_panel(password: str = Depends(verify_admin_password)):
    """Upload form with live progress."""
    return HTMLResponse(render_panel(password))
