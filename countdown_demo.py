# -*- coding: utf-8 -*-
########################
# countdown_demo.py
########################
# Purpose:
# - Runnable demo of the cue scheduler: a 3-2-1-GO countdown, five pulses, then FINISH.
# - Headless mode drives virtual time with FixedStepDriver and prints each firing.
# - GUI mode shows a small PyQt6 window with play/pause, reset, a scrubber, and a big label.
#
# Design notes:
# - Qt is imported lazily inside the GUI path so headless runs and --run-tests need no display.
# - Reset is pause + seek(0). Scrubbing is seek(), so jumping ahead never replays skipped cues.
# - The window pauses itself once the timeline reaches total_duration_ms.
#
########################
# Interfaces:
# Public functions:
# - run_headless(*, total_duration_ms: int, step_ms: int, emit: Callable[[str], None] = print) -> list[str]
# - build_argument_parser() -> argparse.ArgumentParser
# - main() -> int
#
# Inputs:
# - CLI flags and AppConfig (config.py).
#
# Outputs:
# - Printed firing log (headless) or a Qt window.
#
########################

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional

import config as config_module
import countdown_sheet
import cue_scheduler
import timeline_driver

logger = logging.getLogger(__name__)


def run_headless(*, total_duration_ms: int, step_ms: int, emit: Callable[[str], None] = print) -> List[str]:
    sheet = countdown_sheet.build_countdown_sheet(total_duration_ms=total_duration_ms)
    scheduler = cue_scheduler.CueScheduler()
    fired_labels: List[str] = []

    def on_label(label: str) -> None:
        fired_labels.append(label)
        emit(f"t={scheduler.current_time_ms:>5}ms  {label}")

    countdown_sheet.attach_countdown(scheduler, sheet, on_label)
    driver = timeline_driver.FixedStepDriver(scheduler, step_ms=step_ms)
    logger.info("Headless countdown: %d ms in %d ms steps", sheet.total_duration_ms, driver.step_ms())

    scheduler.play()
    driver.run_until(sheet.total_duration_ms)
    scheduler.destroy()
    return fired_labels


def _run_gui(app_config: config_module.AppConfig) -> int:
    from PyQt6.QtCore import Qt
    from PyQt6.QtGui import QFont
    from PyQt6.QtWidgets import (
        QApplication,
        QHBoxLayout,
        QLabel,
        QPushButton,
        QSlider,
        QVBoxLayout,
        QWidget,
    )

    from qt_timeline_driver import QtTimelineDriver

    qt_application = QApplication(sys.argv)

    sheet = countdown_sheet.build_countdown_sheet(total_duration_ms=app_config.demo.total_duration_ms)
    scheduler = cue_scheduler.CueScheduler()
    driver = QtTimelineDriver(scheduler, tick_ms=app_config.driver.tick_ms)

    window = QWidget()
    window.setWindowTitle("cuesheet countdown")
    window.setStyleSheet("background: #050313; color: #F3F0FC;")

    display_label = QLabel("READY", window)
    display_font = QFont()
    display_font.setPointSize(64)
    display_font.setBold(True)
    display_label.setFont(display_font)
    display_label.setAlignment(Qt.AlignmentFlag.AlignCenter)

    event_label = QLabel("", window)
    event_label.setAlignment(Qt.AlignmentFlag.AlignCenter)

    time_label = QLabel("0.00s", window)

    play_button = QPushButton("Play", window)
    reset_button = QPushButton("Reset", window)

    scrubber = QSlider(Qt.Orientation.Horizontal, window)
    scrubber.setRange(0, sheet.total_duration_ms)

    controls_row = QHBoxLayout()
    controls_row.addWidget(play_button)
    controls_row.addWidget(reset_button)
    controls_row.addWidget(scrubber, 1)
    controls_row.addWidget(time_label)

    root_layout = QVBoxLayout(window)
    root_layout.addWidget(display_label, 1)
    root_layout.addWidget(event_label)
    root_layout.addLayout(controls_row)

    def on_label(label: str) -> None:
        event_label.setText(label)
        if label == "PULSE":
            return
        if label == "GO!":
            display_label.setText("GO")
        elif label == "FINISH":
            display_label.setText("DONE")
            driver.stop()
        else:
            display_label.setText(label)

    countdown_sheet.attach_countdown(scheduler, sheet, on_label)

    def on_time_updated(time_ms: int) -> None:
        time_label.setText(f"{time_ms / 1000.0:.2f}s")
        if not scrubber.isSliderDown():
            scrubber.blockSignals(True)
            scrubber.setValue(min(int(time_ms), sheet.total_duration_ms))
            scrubber.blockSignals(False)
        if driver.is_running() and time_ms >= sheet.total_duration_ms:
            driver.stop()

    def on_play_state_changed(is_playing: bool) -> None:
        play_button.setText("Pause" if is_playing else "Play")

    def on_play_clicked() -> None:
        if driver.is_running():
            driver.stop()
            return
        if scheduler.current_time_ms >= sheet.total_duration_ms:
            driver.seek(0)
        driver.start()

    def on_reset_clicked() -> None:
        driver.stop()
        driver.seek(0)
        display_label.setText("READY")
        event_label.setText("")

    driver.timeUpdated.connect(on_time_updated)
    driver.playStateChanged.connect(on_play_state_changed)
    play_button.clicked.connect(on_play_clicked)
    reset_button.clicked.connect(on_reset_clicked)
    scrubber.valueChanged.connect(driver.seek)

    window.resize(640, 420)
    window.show()

    exit_code = int(qt_application.exec())
    driver.stop()
    scheduler.destroy()
    return exit_code


def _run_unit_tests() -> None:
    import cue_models
    import playback_clock

    cue_models._run_unit_tests()
    playback_clock._run_unit_tests()
    cue_scheduler._run_unit_tests()
    timeline_driver._run_unit_tests()

    lines: List[str] = []
    labels = run_headless(total_duration_ms=7500, step_ms=100, emit=lines.append)
    # READY sits at t=0, which is never strictly after the starting position.
    assert labels == ["3", "2", "1", "GO!"] + ["PULSE"] * 5 + ["FINISH"]
    assert len(lines) == len(labels)


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="cuesheet countdown demo")
    parser.add_argument("--headless", action="store_true", help="Drive virtual time without Qt and print firings.")
    parser.add_argument("--run-tests", action="store_true", help="Run pure logic self-checks (no Qt).")
    parser.add_argument("--config", type=Path, default=None, help="Path to a cuesheet JSON config file.")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_argument_parser().parse_args(argv)

    try:
        if args.config is not None:
            app_config, _config_path = config_module.load_config(args.config)
        else:
            app_config, _config_path = config_module.get_config()
    except (OSError, ValueError) as exception:
        print(f"Config error: {exception}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, app_config.logging.level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.run_tests:
        _run_unit_tests()
        print("Self-checks passed.")
        return 0

    if args.headless:
        run_headless(
            total_duration_ms=app_config.demo.total_duration_ms,
            step_ms=app_config.demo.headless_step_ms,
        )
        return 0

    return _run_gui(app_config)


if __name__ == "__main__":
    raise SystemExit(main())
