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

import os

from boxkit.Kernel import PUBLIC_VERSION, Singleton, getLogger

# HTTP read chunk size (256 KiB)
TRANSFER_CHUNK_SIZE = int(os.getenv('TRANSFER_CHUNK_SIZE', 256 * 1024))

# Local file copy / archive body chunk size (1 MiB)
COPY_CHUNK_SIZE = int(os.getenv('COPY_CHUNK_SIZE', 1024 * 1024))

# Seconds; unset means a stalled transfer blocks until the caller gives up
FETCH_TIMEOUT = float(os.environ['FETCH_TIMEOUT']) if os.getenv('FETCH_TIMEOUT') else None

PROGRESS_LOG_INTERVAL = float(os.getenv('PROGRESS_LOG_INTERVAL', 2.0))

SUPPORT_URL = 'https://github.com/boxkit/boxkit/issues'

USER_AGENT = f'boxkit/{PUBLIC_VERSION}'

logger = getLogger(__name__)


# Singleton
class SettingsGetter(Singleton):

    @classmethod
    def getInstance(cls):
        if cls not in cls._instances:
            raise RuntimeError('Get SettingsGetter before initialized it.')
        return cls._instances[cls]

    def initialize(self, platform=None, exePath=None, cliMode=False):
        self.platform = platform
        self.exePath = exePath
        self.cliMode = cliMode

        logger.debug(f'Settings initialized: {platform=} {exePath=} {cliMode=}')

    def isCLIMode(self):
        return self.cliMode

    def setCLIMode(self, cliMode):
        self.cliMode = cliMode

    def getSupportURL(self):
        return os.getenv('BOXKIT_SUPPORT_URL', SUPPORT_URL)
