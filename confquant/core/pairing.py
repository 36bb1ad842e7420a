from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
import logging
import re

from ..models.records import ImagePairPaths, SkippedFile

logger = logging.getLogger(__name__)

IMAGE_EXTS = (".tif", ".tiff", ".stk")
PRIMARY_PREFIXES = ("conf405", "conf 405")
SECONDARY_TEMPLATES = ("conf488-{id}{ext}", "conf 488-{id}{ext}", "conf488 -{id}{ext}")

_IDENTIFIER_RE = re.compile(r"conf\s?405\s?-?\s?(.*?)\.(tif|tiff|stk)", re.IGNORECASE)


@dataclass
class PairingResult:
    pairs: list[ImagePairPaths] = field(default_factory=list)
    skipped: list[SkippedFile] = field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


def _natural_key(name: str):
    return tuple(
        (0, int(tok), "") if tok.isdigit() else (1, 0, tok.lower())
        for tok in re.split(r"(\d+)", name)
        if tok
    )


def is_primary_name(name: str) -> bool:
    lower = name.lower()
    return lower.startswith(PRIMARY_PREFIXES) and lower.endswith(IMAGE_EXTS)


def extract_identifier(name: str) -> str | None:
    """Return the pair identifier embedded in a conf405 file name.

    ``conf405-12.tif`` and ``conf 405 - 12.TIF`` both yield ``"12"``. The
    identifier names the pair's output folder, so captures that are empty,
    punctuation only (``"."``, ``".."``) or contain a path separator are
    rejected and ``None`` is returned.
    """
    m = _IDENTIFIER_RE.search(name)
    if not m:
        return None
    ident = m.group(1).strip()
    if not any(c.isalnum() for c in ident):
        return None
    if "/" in ident or "\\" in ident:
        return None
    return ident


def _extension_of(name: str) -> str:
    # Longest match first so ".tiff" is not read as ".tif".
    lower = name.lower()
    for ext in sorted(IMAGE_EXTS, key=len, reverse=True):
        if lower.endswith(ext):
            return name[-len(ext):]
    return ""


def find_secondary(folder: Path, identifier: str, ext: str,
                   listing: dict[str, str] | None = None) -> Path | None:
    """Probe the conf488 spellings for ``identifier`` in order.

    Matching ignores case. Returns ``None`` when no spelling exists.
    """
    if listing is None:
        listing = {p.name.lower(): p.name for p in folder.iterdir() if p.is_file()}
    for template in SECONDARY_TEMPLATES:
        candidate = template.format(id=identifier, ext=ext).lower()
        if candidate in listing:
            return folder / listing[candidate]
    return None


def resolve_pairs(folder: Path) -> PairingResult:
    """Find every conf405/conf488 pair in ``folder``.

    Files that look like conf405 images but cannot be paired are reported in
    :attr:`PairingResult.skipped` rather than raising.
    """
    folder = Path(folder)
    files = [p.name for p in folder.iterdir() if p.is_file()]
    logger.info("Scanning %s (%d files)", folder, len(files))
    listing = {name.lower(): name for name in files}

    primaries = sorted(
        (n for n in files if is_primary_name(n)),
        key=lambda n: (_natural_key(extract_identifier(n) or ""), _natural_key(n)),
    )
    logger.info("Found %d conf405 file(s)", len(primaries))

    result = PairingResult()
    seen: set[str] = set()
    for name in primaries:
        ident = extract_identifier(name)
        if ident is None:
            logger.warning("Could not extract identifier from %s", name)
            result.skipped.append(SkippedFile(name, "no identifier"))
            continue
        if ident in seen:
            logger.warning("Duplicate identifier %r from %s; skipping", ident, name)
            result.skipped.append(SkippedFile(name, "duplicate identifier"))
            continue
        ext = _extension_of(name)
        secondary = find_secondary(folder, ident, ext, listing)
        if secondary is None:
            logger.warning("Missing conf488 for %s", name)
            result.skipped.append(SkippedFile(name, "missing conf488"))
            continue
        logger.debug("Paired %s with %s", name, secondary.name)
        seen.add(ident)
        result.pairs.append(ImagePairPaths(ident, folder / name, secondary))
    return result
