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

import platform
import sys
import os
import signal

from boxkit.Kernel import getLogger
from boxkit.Settings import SettingsGetter
from boxkit.CLI import configureCLIParser, configureLogging, showVersion, loadEnvFile
from boxkit.Utils import flushPrint, formatSize, sendException
from boxkit.Errors import BoxError
from boxkit.Copier import TreeCopier
from boxkit.Archives import ArchiveWriter, ArchiveReader
from boxkit.Transporter import Transporter

logger = getLogger(__name__)


def setupGracefulShutdown():
    """Setup signal handlers for graceful shutdown on multiple Ctrl+C"""
    context = {'shutdownInProgress': False}

    def signalHandler(signum, frame):
        if context['shutdownInProgress']:
            # Second Ctrl+C - force immediate exit without cleanup messages
            os._exit(1)
        else:
            context['shutdownInProgress'] = True
            raise KeyboardInterrupt()

    signal.signal(signal.SIGINT, signalHandler)


def setupSettings():
    # Load .env file early (before any configuration is read)
    loadEnvFile()

    return SettingsGetter(platform=platform.system(), exePath=sys.executable)


def processCopy(args):
    copied = TreeCopier().copy(args.dst, args.src)
    flushPrint(f"Copied {copied} files to {args.dst}")
    return 0


def processArchive(args):
    writer = ArchiveWriter(includeDirectories=args.includeDirectories)

    sinks = []
    try:
        for output in args.outputs:
            sinks.append(open(output, 'wb'))

        entries = writer.archive(args.root, *sinks)
    finally:
        for sink in sinks:
            sink.close()

    flushPrint(f"Archived {len(entries)} entries to {', '.join(args.outputs)}")
    return 0


def processRestore(args):
    with open(args.archive, 'rb') as source:
        entries = ArchiveReader().restore(args.dest, source)

    flushPrint(f"Restored {len(entries)} entries to {args.dest}")
    return 0


def processFetch(args):
    with Transporter(timeout=args.timeout) as transporter, open(args.output, 'wb') as sink:
        if args.progress:
            transferSession = transporter.fetchWithProgress(args.url, sink)
        else:
            transferSession = transporter.fetch(args.url, sink)

    flushPrint(f"Downloaded: {args.output} ({formatSize(transferSession.transferred)})")
    return 0


COMMANDS = {
    'copy': processCopy,
    'archive': processArchive,
    'restore': processRestore,
    'fetch': processFetch,
}


def runCLIMain(argv=None):
    """Parse arguments and run one command

    Returns:
        int: Exit code (0 for success, 1 for error)
    """
    parser = configureCLIParser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)

    configureLogging(args.logLevel)

    if args.version:
        showVersion()
        return 0

    if args.command is None:
        parser.print_help()
        return 0

    SettingsGetter.getInstance().setCLIMode(True)

    try:
        return COMMANDS[args.command](args)
    except BoxError as e:
        sendException(logger, e, errorPrefix=f"{args.command.capitalize()} failed")
        return 1
    except OSError as e:
        # Opening the command's own input/output files
        sendException(logger, e, errorPrefix=f"{args.command.capitalize()} failed")
        return 1


def main():
    setupSettings()
    setupGracefulShutdown()

    try:
        return runCLIMain()
    except KeyboardInterrupt:
        flushPrint('\nExiting on user request (Ctrl+C)...')
        return 130


if __name__ == '__main__':
    sys.exit(main() or 0)
