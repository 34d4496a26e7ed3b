# Copyright Red Hat
#
# dirdelta/__main__.py - Directory delta command entry point
#
# This file is part of the dirdelta project.
#
# SPDX-License-Identifier: Apache-2.0
import sys

from dirdelta.command import main


def run():
    """Console script entry point."""
    sys.exit(main(sys.argv))


if __name__ == "__main__":
    run()
