from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TextIO

import pandas as pd

from .dispatch import OutcomeRecord

LOGGER = logging.getLogger("acmc_bench.workload.recorder")

HEADER = "label,op,ok,start_ms,end_ms"
COLUMNS = HEADER.split(",")


def safe_label(label: str) -> str:
    return re.sub(r"[^\w.\-]+", "_", str(label or ""))


def latency_log_path(output_dir: Path | str, label: str, worker_index: int) -> Path:
    return Path(output_dir) / f"{safe_label(label)}__w{worker_index}.csv"


def format_record(label: str, record: OutcomeRecord) -> str:
    return (
        f"{label},{record.operation},{1 if record.ok else 0},"
        f"{record.start_ms:.3f},{record.end_ms:.3f}"
    )


class LatencyRecorder:
    """Append-only per-worker latency log, one CSV line per tick."""

    def __init__(self, path: Path, label: str, stream: TextIO) -> None:
        self._path = path
        # The label is a CSV field on a single line.
        self._label = re.sub(r"[,\r\n]+", "_", str(label))
        self._stream: TextIO | None = stream
        self.records_written = 0

    @classmethod
    def open(cls, path: Path | str, label: str) -> "LatencyRecorder":
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        needs_header = not path.exists() or path.stat().st_size == 0
        stream = path.open("a", encoding="utf-8", newline="")
        if needs_header:
            stream.write(HEADER + "\n")
        LOGGER.info("Latency log %s (%s)", path, "new" if needs_header else "appending")
        return cls(path, label, stream)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def closed(self) -> bool:
        return self._stream is None

    def append(self, record: OutcomeRecord) -> None:
        if self._stream is None:
            raise ValueError(f"latency log {self._path} is closed")
        self._stream.write(format_record(self._label, record) + "\n")
        self.records_written += 1

    def close(self) -> None:
        if self._stream is None:
            return
        self._stream.flush()
        self._stream.close()
        self._stream = None

    def __enter__(self) -> "LatencyRecorder":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def load_latency_log(path: Path | str) -> pd.DataFrame:
    """Read one worker's latency log, adding a ``latency_ms`` column."""
    df = pd.read_csv(path, dtype={"label": str, "op": str})
    if df.empty:
        return pd.DataFrame(columns=COLUMNS + ["latency_ms"])
    df["ok"] = df["ok"].astype(int)
    df["latency_ms"] = (df["end_ms"] - df["start_ms"]).clip(lower=0.0)
    return df


def summarize_latency_log(df: pd.DataFrame) -> pd.DataFrame:
    """Per-operation count, success rate and latency percentiles for one log."""
    if df.empty:
        return pd.DataFrame(
            columns=["op", "count", "success_rate", "p50_ms", "p95_ms"]
        )
    grouped = df.groupby("op")
    summary = pd.DataFrame(
        {
            "count": grouped.size(),
            "success_rate": grouped["ok"].mean(),
            "p50_ms": grouped["latency_ms"].quantile(0.5),
            "p95_ms": grouped["latency_ms"].quantile(0.95),
        }
    )
    return summary.reset_index()


__all__ = [
    "HEADER",
    "LatencyRecorder",
    "format_record",
    "latency_log_path",
    "load_latency_log",
    "safe_label",
    "summarize_latency_log",
]
