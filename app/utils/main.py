import os
import shutil
from datetime import datetime
from typing import Optional, Tuple

from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool

from app.core.config import settings


def safe_filename(name: Optional[str], ts: int) -> str:
    base = os.path.basename(name or "")
    safe = "".join(ch for ch in base if ch.isalnum() or ch in "._- ").strip().replace(" ", "_")
    if not safe:
        safe = f"archivo_{ts}"
    return f"{ts}_{safe}"


async def save_upload_for_paciente(patient_id: int, up: UploadFile) -> Optional[Tuple[str, str, int]]:
    """
    Guarda UploadFile en MEDIA_ROOT/pacientes/{id}/.
    Devuelve (rel_path, filename, size) o None si no hay archivo.
    """
    if not up or not up.filename:
        return None

    dest_dir = os.path.join(settings.MEDIA_ROOT, "pacientes", str(patient_id))
    os.makedirs(dest_dir, exist_ok=True)

    ts = int(datetime.now().timestamp() * 1000)
    filename = safe_filename(up.filename, ts)
    dest_path = os.path.join(dest_dir, filename)

    # escritura SINC en threadpool (no bloquear el loop)
    def _write_sync():
        up.file.seek(0)
        with open(dest_path, "wb") as f:
            shutil.copyfileobj(up.file, f, length=1024 * 1024)

    await run_in_threadpool(_write_sync)

    rel_path = os.path.relpath(dest_path, settings.MEDIA_ROOT).replace("\\", "/")
    size = os.path.getsize(dest_path)
    return rel_path, filename, size


async def remove_media_file(rel_path: str) -> bool:
    root = os.path.abspath(settings.MEDIA_ROOT)
    path = os.path.abspath(os.path.join(root, rel_path))
    if not path.startswith(root + os.sep) or not os.path.isfile(path):
        return False
    await run_in_threadpool(os.remove, path)
    return True
