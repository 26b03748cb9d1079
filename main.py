"""
main.py – RepackBrowser application entry point.
Configures logging, bootstraps the PySide6 QApplication and launches the main window.
"""

import logging
import os
import sys

from PySide6.QtCore import Qt
from PySide6.QtWidgets import QApplication

from main_window import MainWindow

LOG_LEVEL: str = os.environ.get("REPACK_BROWSER_LOG_LEVEL", "INFO")


def main() -> None:
    logging.basicConfig(
        level=LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)

    QApplication.setHighDpiScaleFactorRoundingPolicy(
        Qt.HighDpiScaleFactorRoundingPolicy.PassThrough
    )

    app = QApplication(sys.argv)
    app.setApplicationName("RepackBrowser")
    app.setApplicationDisplayName("RepackBrowser – Game Repack Catalogue")
    app.setOrganizationName("RepackBrowser")

    window = MainWindow()
    window.show()

    sys.exit(app.exec())


if __name__ == "__main__":
    main()
