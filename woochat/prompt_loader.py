from __future__ import annotations

from pathlib import Path


def load_prompt(prompt_path: Path) -> str:
    """Purpose: Load a prompt file as UTF-8 text and strip BOM if present.
    Inputs/Outputs: Input is a Path to the prompt file; output is the decoded, trimmed string.
    Side Effects / State: None; pure function reading the filesystem.
    Dependencies: Uses Path.read_text/read_bytes; used for the system instruction and
        the context preamble.
    Failure Modes: UnicodeDecodeError triggers a fallback decode with errors ignored,
        which can drop invalid bytes. A missing file raises FileNotFoundError.
    Testing Notes: Validate BOM-stripping and fallback decoding on non-UTF8 files.
    """
    # Read as UTF-8 and fall back to a tolerant decode if needed.
    try:
        text = prompt_path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        raw = prompt_path.read_bytes()
        text = raw.decode("utf-8", errors="ignore")
    return text.lstrip("\ufeff").strip()
