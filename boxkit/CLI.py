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

import argparse
import json
import os
import logging
import logging.config
import platform

from boxkit.Kernel import PUBLIC_VERSION, getLogger, configureGlobalLogLevel, LOG_LEVEL_MAPPING, StorageLocator
from boxkit.Utils import flushPrint, getEnv

logger = getLogger(__name__)


def loadEnvFile():
    """
    Load environment variables from the .env file found by StorageLocator.
    Variables already present in os.environ are left untouched.

    Returns:
        int: Number of variables loaded
    """
    envFilePath = StorageLocator.getInstance().findConfig('.env')

    if not os.path.exists(envFilePath):
        return 0

    logger.debug(f'Loading .env file from: {envFilePath}')
    loadedCount = 0

    try:
        with open(envFilePath, 'r', encoding='utf-8') as f:
            for lineNum, line in enumerate(f, 1):
                line = line.strip()

                # Skip empty lines and comments
                if not line or line.startswith('#'):
                    continue

                if '=' not in line:
                    logger.warning(f'.env line {lineNum}: Invalid format (missing =): {line}')
                    continue

                key, _, value = line.partition('=')
                key = key.strip()
                value = value.strip()

                if not key:
                    logger.warning(f'.env line {lineNum}: Empty key')
                    continue

                if (value.startswith('"') and value.endswith('"')) or \
                   (value.startswith("'") and value.endswith("'")):
                    value = value[1:-1]

                # Environment takes precedence
                if key not in os.environ:
                    os.environ[key] = value
                    loadedCount += 1
                else:
                    logger.debug(f'.env: Skipped {key} (already set in environment)')
    except OSError as e:
        logger.error(f'Unable to read .env file {envFilePath}: {e}')
        return loadedCount

    logger.debug(f'Loaded {loadedCount} environment variables from .env')
    return loadedCount


def configureLogging(logLevel):
    """Configure logging from a level name or a logging config JSON file

    Priority order:
    1. logLevel parameter (from --log-level CLI argument)
    2. BOXKIT_LOGGING_LEVEL environment variable
    3. None (no configuration change)
    """

    def suppressNoisyLogger():
        logging.getLogger('urllib3').setLevel(logging.INFO)
        logging.getLogger('urllib3.connectionpool').setLevel(logging.INFO)
        logging.getLogger('sentry_sdk').setLevel(logging.INFO)

    if logLevel is None:
        logLevel = getEnv('BOXKIT_LOGGING_LEVEL', None)

    if logLevel is None:
        suppressNoisyLogger()
        return None

    if os.path.isfile(logLevel):
        try:
            with open(logLevel, 'r') as configFile:
                configDict = json.load(configFile)

            logging.config.dictConfig(configDict)
            logger.info(f"Logging configured from file: {logLevel}")
            suppressNoisyLogger()
            return logLevel

        except (json.JSONDecodeError, ValueError, KeyError) as e:
            flushPrint(f"Failed to load logging config from {logLevel}: {e}")
            flushPrint("Falling back to default logging level configuration")

    if logLevel.upper() in LOG_LEVEL_MAPPING:
        configureGlobalLogLevel(LOG_LEVEL_MAPPING[logLevel.upper()])
        logger.info(f"Logging level set to {logLevel}")
    else:
        logger.warning(f"Invalid logging level '{logLevel}', using WARNING as default")
        configureGlobalLogLevel(logging.WARNING)

    suppressNoisyLogger()

    return logLevel


def showVersion():
    flushPrint(f"BoxKit v{PUBLIC_VERSION}")
    uname = platform.uname()
    flushPrint(f"Architecture: {uname.system} {uname.release} {uname.machine}")


def configureCLIParser():
    """Build the argument parser: global options plus one sub-command per operation

    Returns:
        argparse.ArgumentParser
    """

    def validateLogLevel(logLevel):
        """Validate log level for argparse"""
        # Allow file paths (they'll be validated later)
        if os.path.exists(logLevel):
            return logLevel

        validLevels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if logLevel.upper() not in validLevels:
            raise argparse.ArgumentTypeError(
                f"Invalid log level '{logLevel}'. Valid levels are: {', '.join(validLevels)}"
            )
        return logLevel.upper()

    def validateTimeout(timeoutStr):
        """Validate timeout value for argparse"""
        try:
            timeout = float(timeoutStr)
        except ValueError:
            raise argparse.ArgumentTypeError(f"Invalid timeout value: {timeoutStr}")

        if timeout <= 0:
            raise argparse.ArgumentTypeError(f"Timeout {timeout} must be positive")
        return timeout

    globalsParent = argparse.ArgumentParser(add_help=False)
    globalsParent.add_argument("--version", action="store_true", help="Show version information")
    globalsParent.add_argument(
        "--log-level",
        type=validateLogLevel,
        help="Set logging level (DEBUG, INFO, WARNING, ERROR) or path to logging config JSON file",
        metavar="LEVEL_OR_FILE",
        dest="logLevel"
    )

    parser = argparse.ArgumentParser(
        prog="boxkit",
        description="Copy, archive, restore and fetch files for developer sandboxes.",
        parents=[globalsParent],
    )
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    copyParser = subparsers.add_parser('copy', help='Copy a directory tree, keeping permissions')
    copyParser.add_argument("src", metavar="SRC", help="Source directory")
    copyParser.add_argument("dst", metavar="DST", help="Destination directory")

    archiveParser = subparsers.add_parser('archive', help='Pack a directory into a tar.gz stream')
    archiveParser.add_argument("root", metavar="ROOT", help="Directory to archive")
    archiveParser.add_argument(
        "--output", "-o", metavar="PATH", action="append", required=True, dest="outputs",
        help="Archive file to write; repeat to write several copies in one pass"
    )
    archiveParser.add_argument(
        "--include-directories",
        action="store_true",
        dest="includeDirectories",
        help="Also store directory entries so empty directories survive a restore"
    )

    restoreParser = subparsers.add_parser('restore', help='Unpack a tar.gz archive')
    restoreParser.add_argument("archive", metavar="ARCHIVE", help="Archive file to read")
    restoreParser.add_argument("--dest", "-d", metavar="DIR", default=".", help="Destination directory (default: .)")

    fetchParser = subparsers.add_parser('fetch', help='Download a URL to a file')
    fetchParser.add_argument("url", metavar="URL", help="HTTP(S) URL to download")
    fetchParser.add_argument("--output", "-o", metavar="PATH", required=True, help="Output file path")
    fetchParser.add_argument(
        "--no-progress", action="store_false", dest="progress", help="Do not print download progress"
    )
    fetchParser.add_argument(
        "--timeout", type=validateTimeout, metavar="SECONDS", help="Connect/read timeout (default: none)"
    )

    return parser
