import sys
from pathlib import Path

import fncli
from loguru import logger

from . import db
from .core.errors import HaseebError

VERBOSE_FLAGS = {"-v", "--verbose"}


def main():
    user_args = sys.argv[1:]
    verbose = any(arg in VERBOSE_FLAGS for arg in user_args)
    user_args = [arg for arg in user_args if arg not in VERBOSE_FLAGS]
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")

    db.init()
    fncli.autodiscover(Path(__file__).parent, "haseeb")

    argv = ["haseeb", *(user_args or ["today"])]
    try:
        code = fncli.dispatch(argv)
    except HaseebError as e:
        sys.stderr.write(f"{e}\n")
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
