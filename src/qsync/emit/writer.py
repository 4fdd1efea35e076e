from __future__ import annotations

import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import Optional, TextIO

logger = logging.getLogger(__name__)


def write_output(text: str, output_path: Path, debug: bool = False, stream: Optional[TextIO] = None) -> bool:
    """
    Write the rendered client in one step.

    In debug mode the text goes to ``stream`` (stdout by default) and
    ``output_path`` is left untouched. Otherwise the text lands in a temporary
    file next to the target which then replaces it, so readers never see a
    half-written file. Returns True when the file was written.
    """
    if debug:
        out = stream if stream is not None else sys.stdout
        out.write(text)
        out.flush()
        return False

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{output_path.name}.", suffix=".tmp", dir=str(output_path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
        os.replace(tmp_name, output_path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise

    logger.info("Wrote %s (%d bytes)", output_path, len(text.encode("utf-8")))
    return True
