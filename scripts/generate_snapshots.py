"""Analyse named areas (or an ad-hoc box) and dump the results as JSON files."""
from __future__ import annotations

import argparse
import json
import pathlib
import sys
from collections import Counter
from datetime import datetime, timedelta, timezone

ROOT_DIR = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from analysis import SunlightAnalyzer
from errors import SunbarError, UpstreamError
from geo_models import BoundingBox

# south, west, north, east
AREAS = {
    "madrid-sol": (40.4100, -3.7150, 40.4230, -3.6960),
    "madrid-malasana": (40.4210, -3.7120, 40.4310, -3.6990),
    "madrid-lavapies": (40.4040, -3.7080, 40.4120, -3.6960),
    "madrid-chamberi": (40.4300, -3.7100, 40.4420, -3.6900),
}
STATUSES = ("SUNNY", "PARTIALLY_SUNNY", "SHADED", "NIGHT", "UNKNOWN")


def _instant(raw: str | None) -> datetime:
    if not raw:
        return datetime.now(timezone.utc).replace(minute=0, second=0, microsecond=0)
    stamp = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    return stamp.astimezone(timezone.utc) if stamp.tzinfo else stamp.replace(tzinfo=timezone.utc)


def _bbox_arg(raw: str) -> tuple[float, float, float, float]:
    parts = [p for p in raw.split(",") if p.strip()]
    if len(parts) != 4:
        raise argparse.ArgumentTypeError("expected south,west,north,east")
    try:
        south, west, north, east = (float(p) for p in parts)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc
    return south, west, north, east


def status_counts(venues: list[dict]) -> dict[str, int]:
    tally = Counter((v.get("sunlightStatus") or {}).get("status", "UNKNOWN") for v in venues)
    counts = {status.lower(): tally.get(status, 0) for status in STATUSES}
    counts["total"] = len(venues)
    return counts


def snapshot_area(
    analyzer: SunlightAnalyzer,
    bbox: BoundingBox,
    instants: list[datetime],
) -> tuple[list[dict], list[str]]:
    """One entry per instant; upstream failures are collected, not raised."""
    entries, failures = [], []
    for instant in instants:
        try:
            result = analyzer.analyze(bbox, instant)
        except UpstreamError as exc:
            failures.append(f"{instant.isoformat()}: {exc}")
            continue
        entries.append(
            {
                "time_utc": instant.isoformat(),
                "sun": result["sunPosition"],
                "counts": status_counts(result["venues"]),
                "source": result["meta"].get("dataSource"),
                "venues": result["venues"],
            }
        )
    return entries, failures


def _dump(target: pathlib.Path, data: dict, pretty: bool) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(data, ensure_ascii=False, indent=2 if pretty else None)
    target.write_text(text, encoding="utf-8")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--out", default="snapshots", help="Output directory.")
    parser.add_argument("--at", default=None, help="ISO 8601 instant (UTC if naive). Default: this hour.")
    parser.add_argument("--hours", type=int, default=1, help="Number of hourly slots starting at --at.")
    parser.add_argument(
        "--area",
        action="append",
        choices=sorted(AREAS),
        help="Named area; repeat for several. Default: all of them.",
    )
    parser.add_argument("--bbox", type=_bbox_arg, help="Ad-hoc area as south,west,north,east.")
    parser.add_argument("--pretty", action="store_true", help="Indent the JSON output.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    targets = {name: AREAS[name] for name in (args.area or sorted(AREAS))}
    if args.bbox:
        targets["custom"] = args.bbox

    try:
        boxes = {name: BoundingBox.create(*edges) for name, edges in targets.items()}
        start = _instant(args.at)
    except (SunbarError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    instants = [start + timedelta(hours=i) for i in range(max(1, args.hours))]
    out_dir = pathlib.Path(args.out)
    analyzer = SunlightAnalyzer()
    manifest = []
    failed = 0

    for name, bbox in boxes.items():
        entries, failures = snapshot_area(analyzer, bbox, instants)
        document = {"area": name, "bbox": bbox.to_overpass(), "snapshots": entries}
        if failures:
            document["failures"] = failures
            failed += 1
            for line in failures:
                print(f"  ! {name} {line}")
        _dump(out_dir / f"{name}.json", document, args.pretty)

        first = entries[0]["counts"] if entries else status_counts([])
        manifest.append({"area": name, "file": f"{name}.json", **first})
        print(f"  {name}: {first['total']} venues, {first['sunny']} sunny, {first['shaded']} shaded")

    _dump(
        out_dir / "index.json",
        {"generated_at_utc": datetime.now(timezone.utc).isoformat(), "areas": manifest},
        args.pretty,
    )
    print(f"{len(boxes)} area(s) x {len(instants)} slot(s) written to {out_dir}")
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
