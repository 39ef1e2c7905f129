"""Tolerant parser for model review responses.

Two input formats are understood:

* marker format: ``[SCORES]``, ``[REVIEWED_CONTENT]`` and ``[IMPROVEMENTS]``
  blocks, with inline ``[ISSUE:<category>]...[/ISSUE]`` spans and
  ``[PRIORITY:<severity>]`` improvement sub-blocks;
* heuristic line format: anything else, scanned line by line for
  ``Label: N/5 - note`` score lines.

All scanning uses ``str.find`` and slicing. Model output is untrusted and can
be arbitrarily long, so nothing here may use a backtracking regex.

``parse_review`` never raises: a fault inside the parser is logged and an
empty ParsedReview is returned.
"""

from __future__ import annotations

import logging

from contentlens_core.models import Improvement, Issue, ParsedReview, ReviewedContent, ScoreEntry

logger = logging.getLogger(__name__)

SCORES_OPEN, SCORES_CLOSE = "[SCORES]", "[/SCORES]"
CONTENT_OPEN, CONTENT_CLOSE = "[REVIEWED_CONTENT]", "[/REVIEWED_CONTENT]"
IMPROVEMENTS_OPEN, IMPROVEMENTS_CLOSE = "[IMPROVEMENTS]", "[/IMPROVEMENTS]"
ISSUE_OPEN, ISSUE_CLOSE = "[ISSUE:", "[/ISSUE]"
PRIORITY_OPEN = "[PRIORITY:"

_SCORE_SHAPE_LENGTH = 3  # "N/5"
_SEPARATORS = ("-", "–")  # hyphen, en dash


def parse_review(text: str) -> ParsedReview:
    """Parse one model response into a ParsedReview."""
    try:
        if not text:
            return ParsedReview()
        if SCORES_OPEN in text or CONTENT_OPEN in text or IMPROVEMENTS_OPEN in text:
            return _parse_marker_format(text)
        return _parse_line_format(text)
    except Exception:
        logger.exception("Failed to parse review response; returning empty review")
        return ParsedReview()


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------


def parse_score_line(line: str) -> tuple[str, ScoreEntry] | None:
    """Return ``(label, entry)`` for a ``Label: N/5 - note`` line, else None.

    Only the digit in front of ``/5`` is inspected, so ``0/5`` and ``7/5``
    are accepted as written.
    """
    colon = line.find(":")
    if colon <= 0:
        return None
    label = line[:colon].strip()
    if not label:
        return None

    rest = line[colon + 1 :].strip()
    if len(rest) < _SCORE_SHAPE_LENGTH or not rest[0].isdigit() or rest[1:3] != "/5":
        return None
    # isdigit() accepts other Unicode digits; only ASCII scores are meaningful
    if rest[0] not in "0123456789":
        return None

    sep = _find_separator(rest, _SCORE_SHAPE_LENGTH)
    if sep == -1:
        return None
    return label, ScoreEntry(score=int(rest[0]), note=rest[sep + 1 :].strip())


def _find_separator(rest: str, start: int) -> int:
    positions = [p for p in (rest.find(s, start) for s in _SEPARATORS) if p != -1]
    return min(positions) if positions else -1


def _parse_scores(block: str) -> dict[str, ScoreEntry]:
    scores: dict[str, ScoreEntry] = {}
    for line in block.split("\n"):
        if not line.strip():
            continue
        parsed = parse_score_line(line)
        if parsed:
            label, entry = parsed
            scores[label] = entry
    return scores


# ---------------------------------------------------------------------------
# Reviewed content
# ---------------------------------------------------------------------------


def extract_issues(block: str) -> list[Issue]:
    """Collect every complete ``[ISSUE:cat]text[/ISSUE]`` span, left to right.

    Scanning stops at the first opener that has no ``]`` or no closing
    marker after it.
    """
    issues: list[Issue] = []
    pos = 0
    while pos < len(block):
        start = block.find(ISSUE_OPEN, pos)
        if start == -1:
            break
        bracket = block.find("]", start + len(ISSUE_OPEN))
        if bracket == -1:
            break
        end = block.find(ISSUE_CLOSE, bracket + 1)
        if end == -1:
            break
        issues.append(
            Issue(
                category=block[start + len(ISSUE_OPEN) : bracket].strip(),
                text=block[bracket + 1 : end].strip(),
                position=start,
            )
        )
        pos = end + len(ISSUE_CLOSE)
    return issues


def strip_issue_markers(block: str) -> str:
    """Remove issue markers, keeping the excerpts in place.

    Closing markers go first, then each opener through its ``]``. An opener
    without a ``]`` keeps the rest of the text verbatim.
    """
    text = "".join(block.split(ISSUE_CLOSE))
    chunks: list[str] = []
    pos = 0
    while pos < len(text):
        start = text.find(ISSUE_OPEN, pos)
        if start == -1:
            chunks.append(text[pos:])
            break
        bracket = text.find("]", start + len(ISSUE_OPEN))
        if bracket == -1:
            chunks.append(text[pos:])
            break
        chunks.append(text[pos:start])
        pos = bracket + 1
    return "".join(chunks)


def _parse_reviewed_content(block: str) -> ReviewedContent:
    return ReviewedContent(plain_text=strip_issue_markers(block).strip(), issues=extract_issues(block))


# ---------------------------------------------------------------------------
# Improvements
# ---------------------------------------------------------------------------


def _extract_field(block: str, name: str) -> str:
    label = f"{name}:"
    start = block.find(label)
    if start == -1:
        return ""
    value_start = start + len(label)
    line_end = block.find("\n", value_start)
    if line_end == -1:
        line_end = len(block)
    return block[value_start:line_end].strip()


def _parse_improvement(chunk: str) -> Improvement | None:
    bracket = chunk.find("]")
    if bracket == -1:
        return None
    severity = chunk[:bracket].strip()
    if not severity:
        return None

    body = chunk[bracket + 1 :]
    category = _extract_field(body, "CATEGORY")
    issue = _extract_field(body, "ISSUE")
    why = _extract_field(body, "WHY")
    if not category or not issue or not why:
        return None

    return Improvement(
        severity=severity.lower(),
        category=category,
        issue=issue,
        why=why,
        current=_extract_field(body, "CURRENT"),
        suggested=_extract_field(body, "SUGGESTED"),
    )


def _parse_improvements(block: str) -> list[Improvement]:
    improvements = []
    # Text before the first priority marker cannot carry a severity.
    for chunk in block.split(PRIORITY_OPEN)[1:]:
        improvement = _parse_improvement(chunk)
        if improvement is not None:
            improvements.append(improvement)
    return improvements


# ---------------------------------------------------------------------------
# Formats
# ---------------------------------------------------------------------------


def _block(text: str, open_marker: str, close_marker: str) -> str | None:
    start = text.find(open_marker)
    if start == -1:
        return None
    end = text.find(close_marker, start + len(open_marker))
    if end == -1:
        return None
    return text[start + len(open_marker) : end]


def _parse_marker_format(text: str) -> ParsedReview:
    review = ParsedReview()

    scores = _block(text, SCORES_OPEN, SCORES_CLOSE)
    if scores is not None:
        review.scores = _parse_scores(scores)

    content = _block(text, CONTENT_OPEN, CONTENT_CLOSE)
    if content is not None:
        review.reviewed_content = _parse_reviewed_content(content)

    improvements = _block(text, IMPROVEMENTS_OPEN, IMPROVEMENTS_CLOSE)
    if improvements is not None:
        review.improvements = _parse_improvements(improvements)

    logger.debug(
        "Parsed marker-format review: %d scores, %d issues, %d improvements",
        len(review.scores),
        len(review.reviewed_content.issues),
        len(review.improvements),
    )
    return review


def _parse_line_format(text: str) -> ParsedReview:
    scores = _parse_scores(text)
    logger.debug("Parsed line-format review: %d scores", len(scores))
    return ParsedReview(scores=scores, reviewed_content=ReviewedContent(plain_text=text))
