from __future__ import annotations

import logging
from typing import Any, Mapping

from flask import Flask, current_app, jsonify, request

# Project-local algorithms
from .colorimetry import InvalidColorError, hex_to_rgb, rgb_to_hex, to_hex
from .exhaustive import ExhaustiveSearch
from .palette import (
    GLASS_COLORS,
    MAX_HEIGHT,
    PRESETS,
    RGB,
    display_name,
    internal_name,
    resolve_glass,
)
from .search import evaluate_stack, find_best

log = logging.getLogger(__name__)

DEFAULTS: Mapping[str, Any] = {
    "BEACON_MAX_HEIGHT": MAX_HEIGHT,
    "BEACON_DEFAULT_PRESET": "Normal",
    "BEACON_DEFAULT_TARGET": "#00eb76",
}

_EXT = "beacon_exhaustive"


def parse_target(val: str | None) -> str:
    """Any CSS colour → '#rrggbb'; falls back to the configured default."""
    return to_hex(val or current_app.config["BEACON_DEFAULT_TARGET"])


def parse_preset(val: str | None) -> str:
    p = (val or current_app.config["BEACON_DEFAULT_PRESET"]).strip()
    # accept "very high" as well as "Very High"
    by_lower = {name.lower(): name for name in PRESETS}
    if p.lower() not in by_lower:
        raise ValueError(f"unknown preset '{p}'")
    return by_lower[p.lower()]


def parse_height(val: str | None) -> int:
    """Stack height for one search; the configured maximum is both default and cap."""
    cap = int(current_app.config["BEACON_MAX_HEIGHT"])
    if val is None or val == "":
        return cap
    try:
        height = int(val)
    except ValueError:
        raise ValueError(f"height must be an integer, got '{val}'") from None
    if not 1 <= height <= cap:
        raise ValueError(f"height must be between 1 and {cap}")
    return height


def parse_palette(names: list[str]) -> dict[str, RGB] | None:
    """Repeated ``glass`` params → palette subset in game order; None means all."""
    if not names:
        return None
    chosen = set()
    for name in names:
        resolve_glass(name)
        chosen.add(name if name in GLASS_COLORS else internal_name(name))
    return {name: rgb for name, rgb in GLASS_COLORS.items() if name in chosen}


def exhaustive_job() -> ExhaustiveSearch:
    return current_app.extensions[_EXT]


def job_payload(job: ExhaustiveSearch) -> dict[str, Any]:
    with job.lock:
        results = job.results if job.finished else job.partial_results()
        return {
            "status": job.status,
            "run": job.run_id,
            "target": job.request.target_hex if job.request else None,
            "maxHeight": job.request.max_height if job.request else None,
            "checked": job.checked,
            "total": job.total,
            "percent": round(job.percent, 2),
            "done": job.finished,
            "results": [c.to_dict() for c in results],
        }


def start_exhaustive(
    target: str, height: int, palette: Mapping[str, RGB] | None
) -> tuple[Any, int]:
    job = exhaustive_job()
    with job.lock:
        job.start(target, max_height=height, palette=palette)
        return jsonify(job_payload(job)), 202


# ----------------------------- Flask app ----------------------------------


def create_app(test_config: Mapping[str, Any] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_mapping(DEFAULTS)
    if test_config:
        app.config.from_mapping(test_config)
    app.extensions[_EXT] = ExhaustiveSearch()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    @app.route("/palette")
    def palette():
        return jsonify(
            [
                {"name": name, "display": display_name(name), "hex": rgb_to_hex(rgb)}
                for name, rgb in GLASS_COLORS.items()
            ]
        )

    @app.route("/stack")
    def stack():
        try:
            target = parse_target(request.args.get("target"))
        except InvalidColorError as e:
            return jsonify({"error": f"invalid color: {e}"}), 400
        try:
            cand = evaluate_stack(request.args.getlist("glass"), hex_to_rgb(target))
        except KeyError as e:
            return jsonify({"error": str(e.args[0])}), 400
        return jsonify({"target": target, **cand.to_dict()})

    @app.route("/search")
    def search():
        try:
            target = parse_target(request.args.get("target"))
        except InvalidColorError as e:
            return jsonify({"error": f"invalid color: {e}"}), 400
        try:
            preset = parse_preset(request.args.get("preset"))
        except ValueError as e:
            return jsonify({"error": str(e), "supported": list(PRESETS)}), 400
        try:
            height = parse_height(request.args.get("height"))
            pal = parse_palette(request.args.getlist("glass"))
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        except KeyError as e:
            return jsonify({"error": str(e.args[0])}), 400

        if PRESETS[preset] is None:
            return start_exhaustive(target, height, pal)
        try:
            found = find_best(target, preset, max_height=height, palette=pal)
        except Exception as exc:
            log.exception("Beam search failed")
            return jsonify({"error": str(exc)}), 500
        return jsonify(
            {
                "target": target,
                "preset": preset,
                "maxHeight": height,
                "checked": found.checked,
                "results": [c.to_dict() for c in found.frontier()],
            }
        )

    @app.route("/exhaustive", methods=["POST"])
    def exhaustive_start():
        try:
            target = parse_target(request.args.get("target"))
        except InvalidColorError as e:
            return jsonify({"error": f"invalid color: {e}"}), 400
        try:
            height = parse_height(request.args.get("height"))
            pal = parse_palette(request.args.getlist("glass"))
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        except KeyError as e:
            return jsonify({"error": str(e.args[0])}), 400
        try:
            return start_exhaustive(target, height, pal)
        except Exception as exc:
            log.exception("Could not start exhaustive search")
            return jsonify({"error": str(exc)}), 500

    @app.route("/exhaustive", methods=["GET"])
    def exhaustive_status():
        job = exhaustive_job()
        # drain and snapshot under one hold of the lock
        with job.lock:
            job.poll()
            return jsonify(job_payload(job))

    @app.route("/exhaustive", methods=["DELETE"])
    def exhaustive_cancel():
        job = exhaustive_job()
        with job.lock:
            job.cancel()
            return jsonify(job_payload(job))

    return app


if __name__ == "__main__":
    # Production: debug=False; the exhaustive job is per-process state.
    create_app().run(debug=False, threaded=True)
