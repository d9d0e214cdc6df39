"""Paste API endpoints and the public paste page."""

from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from pastebox.config import get_settings
from pastebox.schemas.paste import CreatePasteRequest, CreatePasteResponse, PasteResponse
from pastebox.services.paste_store import PasteStore, get_paste_store

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))

router = APIRouter(tags=["Pastes"])


@router.post("/api/createPaste", response_model=CreatePasteResponse)
def create_paste(body: CreatePasteRequest, store: PasteStore = Depends(get_paste_store)) -> CreatePasteResponse:
    """Store a paste and return its id once it is durable."""
    paste = store.create(body.paste)
    return CreatePasteResponse(id=paste.id)


@router.get("/api/pastes/{paste_id}", response_model=PasteResponse)
def get_paste(paste_id: str, store: PasteStore = Depends(get_paste_store)) -> PasteResponse:
    """Get a paste as JSON."""
    return PasteResponse.model_validate(store.get(paste_id))


@router.get("/p/{paste_id}", response_class=HTMLResponse)
def paste_page(request: Request, paste_id: str, store: PasteStore = Depends(get_paste_store)) -> HTMLResponse:
    """Render a paste for the browser."""
    paste = store.get(paste_id)
    paste_url = f"{get_settings().PUBLIC_BASE_URL}/p/{paste.id}"
    return templates.TemplateResponse(request, "paste.html", {"request": request, "paste": paste, "paste_url": paste_url})
