"""Command-line interface for travel_history.

Run:
    python -m travel_history process --csv samples.csv --output-dir out/
"""

import argparse
import json
import logging
from pathlib import Path
from typing import List, Optional

import pandas as pd

from .config import PipelineConfig
from .frames import samples_from_dataframe, segments_to_dataframe, trips_to_dataframe, visits_to_dataframe
from .geocoding import NominatimConfig, NominatimReverseGeocoder
from .pipeline import LocationProcessor

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_BAD_INPUT = 2


def _load_config(path: Optional[str]) -> PipelineConfig:
    if path is None:
        return PipelineConfig()
    with open(path, encoding='utf-8') as fh:
        return PipelineConfig.from_dict(json.load(fh))


def _cmd_process(args: argparse.Namespace) -> int:
    try:
        config = _load_config(args.config)
        df = pd.read_csv(args.csv)
        samples = samples_from_dataframe(df, default_user=args.user or '', time_unit=args.time_unit)
    except (OSError, ValueError, pd.errors.ParserError) as e:
        print(f"error: {e}")
        return EXIT_BAD_INPUT

    if args.user:
        samples = [s for s in samples if s.user_id == args.user]
    if not samples:
        print("error: no usable samples in input")
        return EXIT_BAD_INPUT

    geocoder = None
    if args.geocode:
        geocoder = NominatimReverseGeocoder(NominatimConfig(user_agent=args.geocode_user_agent))

    processor = LocationProcessor(config, geocoder=geocoder)
    try:
        results = processor.process_users(samples)
    finally:
        processor.close()

    out_dir = Path(args.output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    visits = [v for r in results.values() for v in r.visits]
    routes = [s for r in results.values() for s in r.routes]
    trips = [t for r in results.values() for t in r.trips]
    visits_to_dataframe(visits).to_csv(out_dir / 'visits.csv', index=False)
    segments_to_dataframe(routes).to_csv(out_dir / 'routes.csv', index=False)
    trips_to_dataframe(trips).to_csv(out_dir / 'trips.csv', index=False)

    for user_id, result in results.items():
        home = (f"({result.home.latitude:.5f}, {result.home.longitude:.5f})"
                if result.home is not None else "unknown")
        print(f"user={user_id or '-'}: visits={len(result.visits)}, routes={len(result.routes)}, "
              f"trips={len(result.trips)}, home={home}")
    print(f"Wrote visits.csv, routes.csv, trips.csv to {out_dir}")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""

    p = argparse.ArgumentParser(prog="travel_history")
    p.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-v info, -vv debug)")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_proc = sub.add_parser("process", help="Derive visits, routes and trips from a samples CSV")
    p_proc.add_argument("--csv", type=str, required=True, help="Input CSV (timestamp, latitude, longitude, ...)")
    p_proc.add_argument("--user", type=str, default=None, help="Only process this user id")
    p_proc.add_argument("--output-dir", type=str, default=".", help="Directory for the output CSVs")
    p_proc.add_argument("--config", type=str, default=None, help="JSON file with pipeline settings")
    p_proc.add_argument(
        "--time-unit",
        type=str,
        default="ms",
        choices=["s", "ms"],
        help="Unit of numeric timestamps (default epoch milliseconds)",
    )
    p_proc.add_argument("--geocode", action="store_true", help="Reverse geocode visits via Nominatim")
    p_proc.add_argument(
        "--geocode-user-agent",
        type=str,
        default="travel-history/0.1.0 (reverse-geocode; set your own UA)",
        help="HTTP User-Agent for the geocoding service",
    )
    p_proc.set_defaults(func=_cmd_process)

    return p


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint."""

    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
