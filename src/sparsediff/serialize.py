"""Text-table and JSON persistence for vectors and matrices.

Table format
------------
A vector is a single line of whitespace separated ``index:value`` tokens,
one per non-zero entry in ascending order.  If position ``dim() - 1`` is zero
a trailing ``dim()-1:0`` token is written so that the dimension survives the
round trip.

A matrix is one line per row, either in sparse form (``col:value`` tokens
with the same trailing-zero convention for ``cols - 1``) or in dense form
(plain values).  The reader detects the form by the presence of ``:``.

JSON format
-----------
``{"Index": [...], "Value": [...], "Length": n}`` for vectors and
``{"Index": [...], "Value": [...], "Rows": r, "Cols": c}`` for matrices, where
matrix indices are logical row-major offsets ``i * cols + j``.  Only non-zero
entries are listed, for dense containers too.

Files are read through :func:`open_text`, which sniffs the gzip magic bytes;
writers compress when asked to or when the file name ends in ``.gz``.
"""

from __future__ import annotations

import gzip
import json
import zlib
from typing import IO, Dict, List, Tuple

from . import config
from .errors import FileFormatError

__all__ = [
    "open_text",
    "create_text",
    "format_vector",
    "format_matrix",
    "export_vector_table",
    "import_vector_table",
    "export_matrix_table",
    "import_matrix_table",
    "vector_to_json",
    "vector_from_json",
    "matrix_to_json",
    "matrix_from_json",
    "export_json",
    "import_vector_json",
    "import_matrix_json",
]

_GZIP_MAGIC = b"\x1f\x8b"

# -----------------------------------------------------------------------------
# Files
# -----------------------------------------------------------------------------


def open_text(filename: str) -> IO[str]:
    """Open *filename* for reading text, decompressing gzip input transparently."""
    with open(filename, "rb") as f:
        magic = f.read(2)
    if magic == _GZIP_MAGIC:
        return gzip.open(filename, "rt", encoding="utf-8")
    return open(filename, "r", encoding="utf-8")


def create_text(filename: str, compress: bool = False) -> IO[str]:
    if compress or filename.endswith(".gz"):
        return gzip.open(filename, "wt", encoding="utf-8")
    return open(filename, "w", encoding="utf-8")


def _read_lines(filename: str) -> List[Tuple[int, List[str]]]:
    """Non-blank lines of a table file as ``(line number, tokens)``."""
    try:
        with open_text(filename) as f:
            return [(k + 1, line.split()) for k, line in enumerate(f) if line.strip()]
    except (UnicodeDecodeError, EOFError, zlib.error) as e:
        raise FileFormatError(f"{filename}: not a readable text table") from e


def _fmt(x: float) -> str:
    return config.TABLE_FLOAT_FORMAT.format(x)


# -----------------------------------------------------------------------------
# Table format
# -----------------------------------------------------------------------------


def _sparse_line(entries: List[Tuple[int, float]], n: int) -> str:
    tokens = [f"{i}:{_fmt(v)}" for i, v in entries]
    if n > 0 and (not entries or entries[-1][0] != n - 1):
        tokens.append(f"{n - 1}:0")
    return " ".join(tokens)


def format_vector(v) -> str:
    entries = [(i, s.get_value()) for i, s in v.const_iterator() if s.get_value() != 0.0]
    return _sparse_line(entries, v.dim())


def _matrix_lines(m, sparse: bool) -> List[str]:
    rows, cols = m.dims()
    lines = []
    for i in range(rows):
        if sparse:
            entries = []
            for j in range(cols):
                x = m.value_at(i, j)
                if x != 0.0:
                    entries.append((j, x))
            lines.append(_sparse_line(entries, cols))
        else:
            lines.append(" ".join(_fmt(m.value_at(i, j)) for j in range(cols)))
    return lines


def format_matrix(m) -> str:
    from .sparse_matrix import SparseMatrix

    return "\n".join(_matrix_lines(m, isinstance(m, SparseMatrix)))


def _parse_float(token: str, lineno: int) -> float:
    try:
        return float(token)
    except ValueError:
        raise FileFormatError(f"line {lineno}: invalid value {token!r}") from None


def _parse_sparse_tokens(tokens: List[str], lineno: int) -> Tuple[List[Tuple[int, float]], int]:
    """``(entries, dimension)`` of one ``index:value`` line."""
    entries = []
    n = 0
    for token in tokens:
        key, sep, value = token.partition(":")
        if not sep:
            raise FileFormatError(f"line {lineno}: expected index:value, got {token!r}")
        try:
            i = int(key)
        except ValueError:
            raise FileFormatError(f"line {lineno}: invalid index {key!r}") from None
        if i < 0:
            raise FileFormatError(f"line {lineno}: negative index {i}")
        entries.append((i, _parse_float(value, lineno)))
        n = max(n, i + 1)
    return entries, n


def export_vector_table(v, filename: str, compress: bool = False):
    with create_text(filename, compress) as f:
        f.write(format_vector(v))
        f.write("\n")


def import_vector_table(target, filename: str):
    try:
        lines = _read_lines(filename)
        if len(lines) > 1:
            raise FileFormatError(f"line {lines[1][0]}: vector tables hold a single line")
        entries, n = _parse_sparse_tokens(lines[0][1], lines[0][0]) if lines else ([], 0)
    except (OSError, FileFormatError):
        target.resize(0)
        raise
    target.resize(0)
    target.resize(n)
    for i, x in entries:
        if x != 0.0:
            target.at(i).set(x)
    return target


def export_matrix_table(m, filename: str, sparse: bool = True, compress: bool = False):
    with create_text(filename, compress) as f:
        for line in _matrix_lines(m, sparse):
            f.write(line)
            f.write("\n")


def import_matrix_table(target, filename: str):
    try:
        lines = _read_lines(filename)
        cells: List[Tuple[int, int, float]] = []
        cols = 0
        sparse = any(":" in tok for _, tokens in lines for tok in tokens)
        for i, (lineno, tokens) in enumerate(lines):
            if sparse:
                entries, n = _parse_sparse_tokens(tokens, lineno)
                cols = max(cols, n)
                cells.extend((i, j, x) for j, x in entries)
            else:
                if i == 0:
                    cols = len(tokens)
                elif len(tokens) != cols:
                    raise FileFormatError(f"line {lineno}: expected {cols} values, got {len(tokens)}")
                cells.extend((i, j, _parse_float(tok, lineno)) for j, tok in enumerate(tokens))
    except (OSError, FileFormatError):
        target._reallocate(0, 0)
        raise
    target._reallocate(len(lines), cols)
    for i, j, x in cells:
        if x != 0.0:
            target.at(i, j).set(x)
    return target


# -----------------------------------------------------------------------------
# JSON format
# -----------------------------------------------------------------------------


def vector_to_json(v) -> Dict[str, object]:
    index, value = [], []
    for i, s in v.const_iterator():
        if s.get_value() != 0.0:
            index.append(i)
            value.append(s.get_value())
    return {"Index": index, "Value": value, "Length": v.dim()}


def matrix_to_json(m) -> Dict[str, object]:
    rows, cols = m.dims()
    index, value = [], []
    for (i, j), s in m.const_iterator():
        if s.get_value() != 0.0:
            index.append(i * cols + j)
            value.append(s.get_value())
    return {"Index": index, "Value": value, "Rows": rows, "Cols": cols}


def _json_entries(data, size_keys: Tuple[str, ...]) -> Tuple[List[int], List[float], List[int]]:
    if not isinstance(data, dict):
        raise FileFormatError("JSON document must be an object")
    missing = [k for k in ("Index", "Value") + size_keys if k not in data]
    if missing:
        raise FileFormatError(f"JSON document lacks {', '.join(missing)}")
    index, value = data["Index"], data["Value"]
    if not isinstance(index, list) or not isinstance(value, list) or len(index) != len(value):
        raise FileFormatError("Index and Value must be lists of the same length")
    sizes = [data[k] for k in size_keys]
    if any(isinstance(s, bool) or not isinstance(s, int) or s < 0 for s in sizes):
        raise FileFormatError(f"{'/'.join(size_keys)} must be non-negative integers")
    total = 1
    for s in sizes:
        total *= s
    for i, x in zip(index, value):
        if isinstance(i, bool) or not isinstance(i, int) or not 0 <= i < total:
            raise FileFormatError(f"invalid index {i!r}")
        if isinstance(x, bool) or not isinstance(x, (int, float)):
            raise FileFormatError(f"invalid value {x!r}")
    return index, [float(x) for x in value], sizes


def vector_from_json(target, data):
    try:
        index, value, (n,) = _json_entries(data, ("Length",))
    except FileFormatError:
        target.resize(0)
        raise
    target.resize(0)
    target.resize(n)
    for i, x in zip(index, value):
        target.at(i).set(x)
    return target


def matrix_from_json(target, data):
    try:
        index, value, (rows, cols) = _json_entries(data, ("Rows", "Cols"))
    except FileFormatError:
        target._reallocate(0, 0)
        raise
    target._reallocate(rows, cols)
    for k, x in zip(index, value):
        target.at(*divmod(k, cols)).set(x)
    return target


def export_json(data: Dict[str, object], filename: str, compress: bool = False):
    with create_text(filename, compress) as f:
        json.dump(data, f)


def _load_json(filename: str):
    try:
        with open_text(filename) as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise FileFormatError(f"{filename}: {e}") from e
    except (UnicodeDecodeError, EOFError, zlib.error) as e:
        raise FileFormatError(f"{filename}: not a readable JSON file") from e


def import_vector_json(target, filename: str):
    try:
        data = _load_json(filename)
    except (OSError, FileFormatError):
        target.resize(0)
        raise
    return vector_from_json(target, data)


def import_matrix_json(target, filename: str):
    try:
        data = _load_json(filename)
    except (OSError, FileFormatError):
        target._reallocate(0, 0)
        raise
    return matrix_from_json(target, data)
