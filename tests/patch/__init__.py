# Copyright Red Hat
#
# tests/patch/__init__.py - Directory delta patch test package
#
# This file is part of the dirdelta project.
#
# SPDX-License-Identifier: Apache-2.0
