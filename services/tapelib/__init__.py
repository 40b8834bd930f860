# Tape Deck Player
# SPDX-License-Identifier: GPL-3.0-or-later

"""Shared library for the tape deck player services."""
