from __future__ import annotations

import re
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, Field


# One round-trip into the frame: rendered text plus table geometry. Cells are every descendant <td>
# of a row (nested tables included), matching how DetranNet's layout tables are read by eye.
_SNAPSHOT_JS = """
() => {
  const text = (el) => ((el && el.innerText) || '');
  const rowOf = (tr) => ({
    text: text(tr),
    cells: Array.from(tr.querySelectorAll('td')).map(td => text(td).trim()),
  });
  return {
    url: location.href,
    text: text(document.body),
    rows: Array.from(document.querySelectorAll('tr')).map(rowOf),
    tables: Array.from(document.querySelectorAll('table')).map(t => ({
      id: t.id || '',
      text: text(t),
      rows: Array.from(t.querySelectorAll('tr')).map(rowOf),
    })),
  };
}
"""


def normalize_ws(s: str) -> str:
    return re.sub(r"\s+", " ", s or "").strip()


class RowSnapshot(BaseModel):
    text: str = ""
    cells: list[str] = Field(default_factory=list)

    @property
    def normalized_text(self) -> str:
        return normalize_ws(self.text)


class TableSnapshot(BaseModel):
    id: str = ""
    text: str = ""
    rows: list[RowSnapshot] = Field(default_factory=list)


class FrameSnapshot(BaseModel):
    """
    Everything the parsers need from the result frame, captured once.

    Kept as plain data so parsing can be unit-tested and replayed offline from debug dumps.
    """

    url: str = ""
    text: str = ""
    rows: list[RowSnapshot] = Field(default_factory=list)
    tables: list[TableSnapshot] = Field(default_factory=list)

    def table_by_id(self, table_id: str) -> Optional[TableSnapshot]:
        for t in self.tables:
            if t.id == table_id:
                return t
        return None

    def save(self, path: Union[str, Path]) -> Path:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return p

    @classmethod
    def load(cls, path: Union[str, Path]) -> "FrameSnapshot":
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))


def capture_snapshot(frame) -> FrameSnapshot:
    """`frame` is a Playwright Frame (or anything with a compatible `evaluate`)."""
    return FrameSnapshot.model_validate(frame.evaluate(_SNAPSHOT_JS))
