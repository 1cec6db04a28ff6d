"""ShakeEngine CLI — the main entry point for all operations.

Usage:
    shake-engine serve       — Start the HTTP/WebSocket server
    shake-engine listen      — Drive the flashlight from samples on stdin
    shake-engine replay      — Run a recorded session through the detector
    shake-engine simulate    — Write a synthetic accelerometer recording
    shake-engine benchmark   — Measure detector throughput
    shake-engine config      — Print the effective detector config as YAML
"""

from __future__ import annotations

import logging
import sys
import time
from pathlib import Path
from typing import Optional

import typer
import yaml

from shake_engine.config import ConfigError, DetectorConfig

app = typer.Typer(
    name="shake-engine",
    help="🔦 Double-chop flashlight toggling from accelerometer streams.",
    add_completion=False,
)


def _setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


def _load_config(config_path: Optional[str], sensitivity: Optional[float]) -> DetectorConfig:
    try:
        config = DetectorConfig.from_yaml(config_path) if config_path else DetectorConfig()
        if sensitivity is not None:
            config = DetectorConfig.with_sensitivity(
                sensitivity,
                **{k: v for k, v in config.to_dict().items() if k != "shake_threshold_g"},
            )
    except (OSError, ConfigError) as e:
        typer.echo(f"❌ Invalid configuration: {e}", err=True)
        raise typer.Exit(1)
    return config


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind address"),
    port: int = typer.Option(8766, help="Port"),
    settings: Optional[str] = typer.Option(None, help="Path to settings JSON"),
    log_level: str = typer.Option("info", help="Log level"),
):
    """Start the sample-ingest / trigger-broadcast server."""
    import uvicorn
    from shake_engine.server import app as fastapi_app, state
    from shake_engine.service import ShakeService
    from shake_engine.settings import SettingsStore

    _setup_logging(log_level)
    if settings:
        state.service = ShakeService(store=SettingsStore(settings))
        typer.echo(f"⚙️  Using settings: {settings}")

    typer.echo(f"🚀 Starting ShakeEngine server on {host}:{port}")
    uvicorn.run(fastapi_app, host=host, port=port, log_level=log_level)


@app.command()
def listen(
    settings: Optional[str] = typer.Option(None, help="Path to settings JSON"),
    boot: bool = typer.Option(False, "--boot", help="Only start if the service was enabled before"),
    log_level: str = typer.Option("warning", help="Log level"),
):
    """Read `timestamp_ms,x,y,z` lines from stdin and toggle the flashlight."""
    from shake_engine.detector import Sample
    from shake_engine.service import ShakeService
    from shake_engine.settings import SettingsStore

    _setup_logging(log_level)
    store = SettingsStore(settings) if settings else SettingsStore()

    if boot:
        service = ShakeService.boot(store=store)
        if service is None:
            typer.echo("💤 Service disabled, not starting")
            raise typer.Exit(0)
    else:
        service = ShakeService(store=store)
        service.start()

    service.on_feedback(lambda fb: typer.echo(f"🔦 {fb.status_text}"))
    typer.echo("👂 Listening for samples on stdin (Ctrl+C to stop)")

    try:
        for line in sys.stdin:
            parts = line.strip().split(",")
            if len(parts) < 4:
                continue
            try:
                sample = Sample(int(float(parts[0])), float(parts[1]), float(parts[2]), float(parts[3]))
            except (ValueError, OverflowError):
                continue
            service.handle_sample(sample)
    except KeyboardInterrupt:
        pass
    finally:
        service.shutdown_flashlight()

    typer.echo(f"\n✅ Stopped. {service.detector.stats.triggers} triggers.")


@app.command()
def replay(
    recording: str = typer.Argument(..., help="Path to recording (.json, .npz or .csv)"),
    config: Optional[str] = typer.Option(None, help="Detector config YAML"),
    sensitivity: Optional[float] = typer.Option(None, help="Sensitivity 0-100"),
    realtime: bool = typer.Option(False, help="Play at original timing"),
    speed: float = typer.Option(1.0, help="Playback speed multiplier"),
):
    """Replay a recorded session through the detector."""
    from shake_engine.detector import GestureDetector
    from shake_engine.recorder import SamplePlayer

    path = Path(recording)
    if not path.exists():
        typer.echo(f"❌ Recording not found: {recording}", err=True)
        raise typer.Exit(1)

    player = SamplePlayer.load(path)
    detector = GestureDetector(_load_config(config, sensitivity))
    typer.echo(f"▶️  Replaying {path.name} ({player.sample_count} samples, {player.duration_ms / 1000:.1f}s)")

    samples = player.play_realtime(speed=speed) if realtime else player.play()
    for event in detector.stream(samples):
        typer.echo(
            f"   🔦 trigger #{event.sequence} at {event.timestamp_ms} ms "
            f"(interval {event.interval_ms} ms, {event.magnitude_g:.2f} g)"
        )

    stats = detector.stats
    typer.echo(f"\n✅ Replay complete. {stats.triggers} triggers.")
    typer.echo(
        f"   candidates={stats.candidates} debounced={stats.debounced} "
        f"running={stats.suppressed} too_slow={stats.too_slow} "
        f"timeouts={stats.timeouts} dropped={stats.dropped}"
    )


@app.command()
def simulate(
    kind: str = typer.Argument("chop", help="chop, running or slow"),
    output: str = typer.Option("simulated.json", "-o", help="Output file path"),
    interval: int = typer.Option(300, help="Gap between chops (ms)"),
    steps: int = typer.Option(12, help="Footfalls for running traces"),
    cadence: float = typer.Option(2.0, help="Running cadence (Hz)"),
    jitter: float = typer.Option(0.0, help="Running timing jitter (ms)"),
    noise: float = typer.Option(0.0, help="Sensor noise std (m/s²)"),
    seed: Optional[int] = typer.Option(None, help="Random seed"),
    compact: bool = typer.Option(False, help="Save in compact .npz format"),
):
    """Write a synthetic accelerometer recording."""
    from shake_engine import synthetic
    from shake_engine.recorder import SampleRecorder

    if kind == "chop":
        trace = synthetic.double_chop(interval_ms=interval, noise_std=noise, seed=seed)
    elif kind == "slow":
        trace = synthetic.double_chop(interval_ms=max(interval, 800), noise_std=noise, seed=seed)
    elif kind == "running":
        trace = synthetic.running(steps=steps, cadence_hz=cadence, jitter_ms=jitter, noise_std=noise, seed=seed)
    else:
        typer.echo(f"❌ Unknown trace kind: {kind}", err=True)
        raise typer.Exit(1)

    recorder = SampleRecorder()
    recorder.start()
    for sample in trace:
        recorder.add_sample(sample)
    recorder.stop()

    path = recorder.save_compact(output) if compact else Path(output)
    if not compact:
        recorder.save(path)
    typer.echo(f"💾 {recorder.sample_count} samples ({recorder.duration_ms / 1000:.1f}s) saved to: {path}")


@app.command()
def benchmark(
    iterations: int = typer.Option(20, help="Passes over the synthetic trace"),
):
    """Measure per-sample detector latency on a mixed synthetic trace."""
    from shake_engine import synthetic
    from shake_engine.detector import GestureDetector, Sample

    trace = synthetic.running(steps=20, noise_std=0.3, seed=42)
    offset = trace[-1].timestamp_ms + 1000
    for s in synthetic.double_chop(noise_std=0.3, seed=7):
        trace.append(Sample(s.timestamp_ms + offset, s.x, s.y, s.z))

    typer.echo(f"⚡ Running benchmark: {iterations} x {len(trace)} samples")

    times = []
    triggers = 0
    for _ in range(iterations):
        detector = GestureDetector()
        for sample in trace:
            t0 = time.perf_counter()
            if detector.feed(sample):
                triggers += 1
            times.append(time.perf_counter() - t0)

    times.sort()
    avg_us = sum(times) / len(times) * 1e6
    p95_us = times[int(len(times) * 0.95)] * 1e6

    typer.echo(f"\n📊 Results:")
    typer.echo(f"   Average latency: {avg_us:.1f} µs/sample")
    typer.echo(f"   P95 latency:     {p95_us:.1f} µs/sample")
    typer.echo(f"   Throughput:      {1e6 / avg_us:.0f} samples/s")
    typer.echo(f"   Triggers/pass:   {triggers // iterations}")


@app.command("config")
def show_config(
    config: Optional[str] = typer.Option(None, help="Detector config YAML to start from"),
    sensitivity: Optional[float] = typer.Option(None, help="Sensitivity 0-100"),
    output: Optional[str] = typer.Option(None, "-o", help="Write to file instead of stdout"),
):
    """Print the effective detector config as YAML."""
    effective = _load_config(config, sensitivity)
    if output:
        effective.to_yaml(output)
        typer.echo(f"💾 Saved to {output}")
    else:
        typer.echo(yaml.dump({"detector": effective.to_dict()}, default_flow_style=False, sort_keys=False))


def main():
    app()


if __name__ == "__main__":
    main()
