"""
Source-text scanning of one component directory.

Walks PHP and JavaScript files in sorted order (so results and the
point at which a budget cuts in are reproducible), looking for
tracking-domain substrings and cookie-setting calls.
"""

from __future__ import annotations

import dataclasses
import os
import pathlib
import re
import time
from collections.abc import Callable, Iterator

from consent_audit.models import site, static
from consent_audit.utils import logger

log = logger.create_logger("SourceScan")

SCAN_SUFFIXES = frozenset({".php", ".js"})

SKIP_DIRS = frozenset({"vendor", "node_modules", "assets", "build", "tests", "languages"})

_COMMENT_PREFIXES = ("//", "#", "*", "/*")

# (method, regex) - group 1 is the cookie name.
COOKIE_CALL_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("setcookie", re.compile(r"""\bsetcookie\s*\(\s*['"]([^'"]+)['"]""", re.IGNORECASE)),
    ("setrawcookie", re.compile(r"""\bsetrawcookie\s*\(\s*['"]([^'"]+)['"]""", re.IGNORECASE)),
    ("$_COOKIE", re.compile(r"""\$_COOKIE\s*\[\s*['"]([^'"]+)['"]\s*\]\s*=(?!=)""")),
    ("header", re.compile(r"""\bheader\s*\(\s*['"]Set-Cookie:\s*([^=;'"\s]+)""", re.IGNORECASE)),
    ("document.cookie", re.compile(r"""document\.cookie\s*=(?!=)\s*['"`]([^=;'"`\s]+)=""")),
    ("set_cookie", re.compile(r"""\bset_cookie\s*\(\s*['"]([^'"]+)['"]""")),
)


@dataclasses.dataclass
class ComponentScan:
    """Findings for one component plus the budget flags that cut it short."""

    domain_matches: list[static.SourcePatternMatch] = dataclasses.field(default_factory=list)
    cookie_matches: list[static.SourcePatternMatch] = dataclasses.field(default_factory=list)
    file_cap_hit: bool = False
    timed_out: bool = False
    files_scanned: int = 0


def is_comment_line(line: str) -> bool:
    return line.lstrip().startswith(_COMMENT_PREFIXES)


def iter_source_files(root: pathlib.Path) -> Iterator[pathlib.Path]:
    """Yield scannable files under *root*, depth-first in name order."""
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(name for name in dirnames if name not in SKIP_DIRS)
        for filename in sorted(filenames):
            path = pathlib.Path(dirpath) / filename
            if path.suffix.lower() in SCAN_SUFFIXES:
                yield path


def find_cookie_calls(line: str) -> list[tuple[str, str]]:
    """``(method, cookie name)`` pairs set on *line*; comment lines yield nothing."""
    if is_comment_line(line):
        return []
    return [(method, match.group(1)) for method, regex in COOKIE_CALL_PATTERNS for match in regex.finditer(line)]


def scan_component(
    component: site.ComponentInfo,
    root: pathlib.Path,
    tracking_domains: list[str],
    *,
    max_files: int,
    max_file_size: int,
    deadline: float,
    clock: Callable[[], float] = time.monotonic,
) -> ComponentScan:
    """Scan *root* for one component.

    Stops when *max_files* files have been read (``file_cap_hit``) or
    when *clock* passes *deadline* (``timed_out``).
    Whatever was found before the cut is kept.  Each tracking domain
    is reported once per component; each cookie name once per call
    style.
    """
    result = ComponentScan()
    seen_domains: set[str] = set()
    seen_cookies: set[tuple[str, str]] = set()
    domains = [(domain, domain.lower()) for domain in tracking_domains if domain]

    for path in iter_source_files(root):
        if clock() > deadline:
            result.timed_out = True
            break
        if result.files_scanned >= max_files:
            result.file_cap_hit = True
            log.warn("File cap reached", {"component": component.id, "cap": max_files})
            break
        try:
            if path.stat().st_size > max_file_size:
                continue
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            log.debug("Unreadable source file", {"file": str(path), "error": str(exc)})
            continue
        result.files_scanned += 1
        relative = f"{component.slug}/{path.relative_to(root).as_posix()}"

        for line_no, line in enumerate(text.splitlines(), start=1):
            line_lower = line.lower()
            for domain, domain_lower in domains:
                if domain not in seen_domains and domain_lower in line_lower:
                    seen_domains.add(domain)
                    result.domain_matches.append(
                        static.SourcePatternMatch(
                            component_id=component.id,
                            component_name=component.display_name,
                            pattern_type="tracking_domain",
                            match=domain,
                            file=relative,
                            line=line_no,
                        )
                    )
            for method, name in find_cookie_calls(line):
                if (method, name) in seen_cookies:
                    continue
                seen_cookies.add((method, name))
                result.cookie_matches.append(
                    static.SourcePatternMatch(
                        component_id=component.id,
                        component_name=component.display_name,
                        pattern_type="cookie_call",
                        match=name,
                        method=method,
                        file=relative,
                        line=line_no,
                    )
                )
    return result
