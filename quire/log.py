import logging
import sys


def setup_logging(verbose: bool = False) -> None:
    """
    Configures logging for the command line.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )

    # Quieten down noisy libraries
    logging.getLogger("watchdog").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)
