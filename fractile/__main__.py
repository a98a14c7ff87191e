import argparse
import logging
import sys

from fractile.fractals.base import RenderSettings
from fractile.fractals.catalog import normalise_algorithm
from fractile.logging_config import setup_logging
from fractile.utils.enums import Algorithm, BackendType, Precision


def _size(text: str):
    try:
        w, h = (int(v) for v in text.lower().split("x"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected WIDTHxHEIGHT, got {text!r}")
    if w <= 0 or h <= 0:
        raise argparse.ArgumentTypeError("size must be positive")
    return w, h


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="fractile", description="Progressive tiled fractal viewer")
    p.add_argument("--loc", default=None, help="location '@<x>,<y>x<zoom>'")
    p.add_argument("--algorithm", default=Algorithm.MANDELBROT.value,
                   help="mandelbrot, julia, burning-ship, tricorn, multibrot-3")
    p.add_argument("--size", type=_size, default=(1024, 640), help="canvas WIDTHxHEIGHT")
    p.add_argument("--backend", choices=[b.name.lower() for b in BackendType], default="cpu")
    p.add_argument("--precision", choices=[p.name.lower() for p in Precision], default="auto")
    p.add_argument("--workers", type=int, default=None, help="CPU worker count")
    p.add_argument("--max-iter", type=int, default=256)
    p.add_argument("-v", "--verbose", action="store_true")
    return p


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    # Qt is only needed for the viewer
    from PySide6.QtWidgets import QApplication

    from fractile.api.render_api import RenderAPI
    from fractile.rendering.service import RenderService
    from fractile.ui.view import FractalViewer

    settings = RenderSettings(
        algorithm=normalise_algorithm(args.algorithm),
        backend=BackendType[args.backend.upper()],
        precision=Precision[args.precision.upper()],
        worker_count=args.workers,
        max_iterations=args.max_iter,
    )
    width, height = args.size
    service = RenderService(width, height, settings=settings, location=args.loc)

    api = RenderAPI(service)
    api.warm_up()

    app = QApplication(sys.argv[:1])
    viewer = FractalViewer(api)
    viewer.show()
    viewer.start()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
