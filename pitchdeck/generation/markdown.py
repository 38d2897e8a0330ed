import re

_LINE_SPLIT_RE = re.compile(r"\r?\n")


def strip_code_fences(text: str) -> str:
    """Return the body between the first and the last line starting with ``` (fences excluded).
    Text with fewer than two fence lines is returned unchanged."""
    lines = _LINE_SPLIT_RE.split(text)
    fence_lines = [i for i, line in enumerate(lines) if line.startswith("```")]
    if len(fence_lines) < 2:
        return text
    first, last = fence_lines[0], fence_lines[-1]
    return "\n".join(lines[first + 1:last])
