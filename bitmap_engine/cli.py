"""Command line interface for `bitmap-engine`."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Sequence

from .config import EngineConfig, load_config
from .errors import EngineError
from .selection import SelectionRect
from .session import EditorSession

logger = logging.getLogger(__name__)


@dataclass
class Operation:
    """One ``--op NAME[:ARGS]`` step."""

    name: str
    args: List[str] = field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> "Operation":
        name, _, raw_args = text.partition(":")
        name = name.strip().lower()
        if name not in OPERATIONS:
            raise argparse.ArgumentTypeError(
                f"unknown operation {name!r} (choose from {', '.join(sorted(OPERATIONS))})"
            )
        args = [part.strip() for part in raw_args.replace("x", ",").split(",") if part.strip()] if raw_args else []
        return cls(name, args)

    def __str__(self) -> str:
        return f"{self.name}:{','.join(self.args)}" if self.args else self.name


def _floats(args: Sequence[str], count: int, defaults: Sequence[float] = ()) -> List[float]:
    values = [float(arg) for arg in args[:count]]
    values.extend(defaults[len(values) : count])
    if len(values) != count:
        raise ValueError(f"expected {count} argument(s), got {len(args)}")
    return values


def _crop(session: EditorSession, args: Sequence[str]) -> None:
    if args:
        left, top, width, height = _floats(args, 4)
        session.set_selection(SelectionRect((left, top), (left + width, top + height)))
    session.crop_to_selection()


def _select(session: EditorSession, args: Sequence[str]) -> None:
    left, top, width, height = _floats(args, 4)
    session.set_selection(SelectionRect((left, top), (left + width, top + height)))


OperationFn = Callable[[EditorSession, Sequence[str]], None]

OPERATIONS: Dict[str, OperationFn] = {
    "blur": lambda s, a: s.blur(*_floats(a, 1, (3,))),
    "sharpen": lambda s, a: s.sharpen(*_floats(a, 1, (1.0,))),
    "grayscale": lambda s, a: s.grayscale(),
    "invert": lambda s, a: s.invert(),
    "sepia": lambda s, a: s.sepia(),
    "brightness-contrast": lambda s, a: s.brightness_contrast(*_floats(a, 2, (0, 0))),
    "saturation": lambda s, a: s.saturation(*_floats(a, 1)),
    "hue-shift": lambda s, a: s.hue_shift(*_floats(a, 1)),
    "posterize": lambda s, a: s.posterize(int(_floats(a, 1, (8,))[0])),
    "auto-levels": lambda s, a: s.auto_levels(),
    "rotate": lambda s, a: s.rotate(int(_floats(a, 1, (90,))[0])),
    "free-rotate": lambda s, a: s.free_rotate(*_floats(a, 1)),
    "flip-horizontal": lambda s, a: s.flip_horizontal(),
    "flip-vertical": lambda s, a: s.flip_vertical(),
    "resize": lambda s, a: s.resize(*(int(v) for v in _floats(a, 2))),
    "select": _select,
    "select-all": lambda s, a: s.select_all(),
    "auto-select": lambda s, a: s.auto_select(*_floats(a, 1, (0,))),
    "clear-selection": lambda s, a: s.clear_selection(),
    "crop": _crop,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bitmap-engine",
        description="Apply a chain of filters and transforms to an image file.",
    )
    parser.add_argument("input", type=Path, help="Image to edit.")
    parser.add_argument("output", type=Path, help="Destination file; .jpg/.jpeg writes JPEG, anything else PNG.")
    parser.add_argument(
        "--op",
        dest="operations",
        action="append",
        type=Operation.parse,
        default=[],
        metavar="NAME[:ARGS]",
        help="Operation to apply, in order (e.g. blur:3, rotate:90, crop:10,10,64,64). Repeatable.",
    )
    parser.add_argument("--config", type=Path, default=None, help="JSON file with engine settings.")
    parser.add_argument("--quality", type=float, default=None, help="JPEG quality in [0, 1] (default: 0.95).")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: WARNING).",
    )
    parser.add_argument("--config-only", action="store_true", help="Emit resolved configuration as JSON and exit.")
    return parser


def parse_config(args: argparse.Namespace) -> EngineConfig:
    config = load_config(args.config) if args.config is not None else EngineConfig()
    if args.quality is not None:
        if not 0.0 <= args.quality <= 1.0:
            raise ValueError(f"--quality must be within [0, 1], got {args.quality}")
        config.jpeg_quality = args.quality
    return config


def run(args: argparse.Namespace, config: EngineConfig) -> Path:
    with EditorSession(config) as session:
        session.open(args.input)
        for operation in args.operations:
            logger.info("Applying %s", operation)
            OPERATIONS[operation.name](session, operation.args)
        session.save(args.output)
    return args.output


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")

    try:
        config = parse_config(args)
    except (EngineError, ValueError) as exc:
        parser.error(str(exc))

    if args.config_only:
        payload = {
            "config": config.to_dict(),
            "operations": [str(operation) for operation in args.operations],
        }
        print(json.dumps(payload, default=str, indent=2))
        return 0

    try:
        output = run(args, config)
    except (EngineError, ValueError) as exc:
        logger.error("%s", exc)
        return 1
    print(output)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
