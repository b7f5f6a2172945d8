"""Owner-only file writes."""

import os
from pathlib import Path


def write_private_file(path: Path, data: bytes) -> None:
    """Atomically write ``data`` to ``path`` with owner-only permissions."""
    path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    temp_file = path.with_suffix(path.suffix + ".tmp")
    fd = os.open(temp_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    # O_CREAT mode is filtered by umask and ignored for pre-existing files
    temp_file.chmod(0o600)
    temp_file.replace(path)
