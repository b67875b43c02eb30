#!/usr/bin/env python
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0
#
# BoxKit - Archive and transfer toolkit for developer sandboxes
# Copyright (C) 2024-2025 BoxKit contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import time
import logging

from tqdm import tqdm

from boxkit.Utils import formatSize, ONE_MB
from boxkit.I18n import _

# Width of the '*' gauge in progress log lines
GAUGE_WIDTH = 40


class BitmathTqdm(tqdm):
    """tqdm bar whose counters and rate use formatSize instead of tqdm's own units."""

    def __init__(self, *args, sizeFormatter=None, unit='B', unitScale=False, **kwargs):
        self.sizeFormatter = sizeFormatter or formatSize

        if 'bar_format' not in kwargs:
            kwargs['bar_format'] = (
                '{desc}: {percentage:3.0f}%|{bar}| '
                '{n_fmt}/{total_fmt} [{elapsed}<{remaining}, {rate_fmt}]'
            )

        super().__init__(*args, unit=unit, unit_scale=unitScale, **kwargs)

    def _formatSpeed(self, rateBytesPerSec):
        if rateBytesPerSec <= 0:
            return _("0/sec")

        return _("{speed}/sec").format(speed=self.sizeFormatter(int(rateBytesPerSec)))

    @property
    def format_dict(self):
        d = super().format_dict

        rate = d.get('rate', 0) or 0
        d['rate_fmt'] = self._formatSpeed(rate)
        d['n_fmt'] = self.sizeFormatter(d.get('n', 0))

        # total is None for unknown sizes
        total = d.get('total')
        d['total_fmt'] = self.sizeFormatter(total) if total is not None else '?'

        return d

    def __bool__(self):
        # tqdm raises TypeError in __bool__ when total is None and no iterable was given
        return hasattr(self, 'n')


class Progress:
    """
    Reports transfer progress either as a tqdm bar or as periodic text lines
    passed to loggerCallback. A totalSize of 0 (or less) means the size is
    unknown: no percentage is computed and the bar only counts bytes.
    """

    def __init__(
        self, totalSize, sizeFormatter=None, loggerCallback=print, logInterval=2.0, useBar=False, barFormat=None,
        description=None
    ):
        self.totalSize = totalSize if totalSize and totalSize > 0 else 0
        self.sizeFormatter = sizeFormatter or formatSize
        self.loggerCallback = loggerCallback
        self.logInterval = logInterval
        self.useBar = useBar
        self.barFormat = barFormat
        self.description = description or _('Progress')

        self.transferred = 0
        self.startTime = time.monotonic()
        self.lastProgressTime = self.startTime
        self.lastProgressBytes = 0

        self.pbar = None
        if self.useBar:
            self._initProgressBar()

    def _initProgressBar(self):
        total = self.totalSize or None

        if self.totalSize == 0:
            defaultBarFormat = '{desc}: {n_fmt} [{elapsed}, {rate_fmt}]{postfix}'
        else:
            defaultBarFormat = (
                '{desc}: {percentage:3.0f}%|{bar}| '
                '{n_fmt}/{total_fmt} [{elapsed}<{remaining}, {rate_fmt}]{postfix}'
            )

        self.pbar = BitmathTqdm(
            total=total,
            desc=self.description,
            sizeFormatter=self.sizeFormatter,
            leave=True,
            ncols=100,
            ascii=False,
            bar_format=self.barFormat or defaultBarFormat
        )

    def update(self, bytesTransferred, forceLog=False, extraText=""):
        """Update progress with the running byte total (not an increment)."""
        previousTransferred = self.transferred
        self.transferred = bytesTransferred
        currentTime = time.monotonic()

        if self.useBar and self.pbar:
            self._updateProgressBar(previousTransferred, extraText)
        elif self._shouldLog(forceLog, currentTime):
            self._logProgress(currentTime, extraText)

    def _updateProgressBar(self, previousTransferred, extraText):
        try:
            increment = self.transferred - previousTransferred
            if increment > 0:
                self.pbar.update(increment)

            self.pbar.set_postfix_str(f" {extraText}" if extraText else "")
        except (ValueError, AttributeError) as e:
            self.loggerCallback(_("Progress bar error: {e}").format(e=e))
            self.useBar = False

    def _shouldLog(self, forceLog, currentTime):
        return (
            forceLog or (self.transferred > 0 and self.transferred % (5 * ONE_MB) == 0) or
            (currentTime - self.lastProgressTime) >= self.logInterval
        )

    def _logProgress(self, currentTime, extraText):
        timeDelta = currentTime - self.lastProgressTime
        bytesDelta = self.transferred - self.lastProgressBytes

        speedBytesPerSec = bytesDelta / timeDelta if timeDelta > 0 else 0
        speedDisplay = self.sizeFormatter(int(speedBytesPerSec))
        sizeDisplay = self.sizeFormatter(self.transferred)

        if self.totalSize > 0:
            percentage = self.getPercentage()
            gauge = '*' * int(percentage * GAUGE_WIDTH / 100)
            progressMsg = _(
                '{sizeDisplay}/{totalDisplay} [{gauge:<{width}} {percentage:.2f}%], {speedDisplay}/sec'
            ).format(
                sizeDisplay=sizeDisplay,
                totalDisplay=self.sizeFormatter(self.totalSize),
                gauge=gauge,
                width=GAUGE_WIDTH,
                percentage=percentage,
                speedDisplay=speedDisplay
            )
        else:
            progressMsg = _('{sizeDisplay} (unknown size), {speedDisplay}/sec').format(
                sizeDisplay=sizeDisplay, speedDisplay=speedDisplay
            )

        if extraText:
            progressMsg += f', {extraText}'

        self.loggerCallback(f'{self.description}: {progressMsg}')

        self.lastProgressTime = currentTime
        self.lastProgressBytes = self.transferred

    def getPercentage(self):
        """Completion percentage in [0, 100]; 0 when the total is unknown."""
        if self.totalSize <= 0:
            return 0
        return min(self.transferred * 100.0 / self.totalSize, 100.0)

    def getElapsedTime(self):
        return time.monotonic() - self.startTime

    def finishBar(self, complete=True):
        """Close the progress bar.

        Args:
            complete: If True, update to 100% before closing; if False, close at current position
        """
        if self.useBar and self.pbar:
            try:
                if complete and self.pbar.total:
                    remaining = self.pbar.total - self.pbar.n
                    if remaining > 0:
                        self.pbar.update(remaining)

                self.pbar.refresh()
                self.pbar.close()
            except (ValueError, AttributeError) as e:
                logging.getLogger(__name__).debug(f"Exception during progress bar cleanup: {e}")
            finally:
                self.pbar = None

    def __enter__(self):
        return self

    def __exit__(self, excType, excVal, excTb):
        # Leave an aborted bar at its current position
        self.finishBar(complete=excType is None)
