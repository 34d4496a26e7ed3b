# Copyright Red Hat
#
# dirdelta/__init__.py - Directory delta package initialisation
#
# This file is part of the dirdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Dirdelta top-level package.
"""
from ._dirdelta import *  # noqa: F401, F403
from ._dirdelta import __all__  # noqa: F401

__version__ = "0.1.0"
