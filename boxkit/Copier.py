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
import shutil

from boxkit.Kernel import getLogger, BoxEvent
from boxkit.Errors import IOFailureError, translateOSError, checkCancelled
from boxkit.FileSystems import LocalFileSystem
from boxkit.Settings import COPY_CHUNK_SIZE

logger = getLogger(__name__)

# Owner needs rwx on a directory while its children are being created
POPULATE_MODE = 0o700


class TreeCopier:
    """
    Recursively duplicates a directory, preserving permission bits.

    Regular files are copied byte for byte and then get the source's mode;
    directories are recreated with the source's mode once their children
    are in place. Symlinks, fifos, sockets and devices are skipped. There is
    no rollback: an error leaves whatever was copied so far.
    """

    def __init__(self, chunkSize=COPY_CHUNK_SIZE):
        self.chunkSize = chunkSize

    def copy(self, dst: str, src: str, cancelEvent=None) -> int:
        """
        Copy the tree at src to dst.

        Args:
            dst: Destination directory, created with missing ancestors
            src: Source directory, must exist
            cancelEvent: Optional threading.Event checked between entries

        Returns:
            Number of regular files copied

        Raises:
            NotFoundError: src does not exist
            PermissionDeniedError: creating a path or changing its mode was refused
            IOFailureError: src is not a directory, or a read/write failed
        """
        fileSystem = LocalFileSystem(src)

        try:
            srcStat = fileSystem.stat(src)
        except OSError as e:
            raise translateOSError(e, src, "Stat") from e

        if not srcStat.isDir:
            raise IOFailureError(f"Source is not a directory: {src}", path=src)

        realSrc = os.path.realpath(src)
        if os.path.commonpath([realSrc, os.path.realpath(dst)]) == realSrc:
            raise IOFailureError(f"Cannot copy {src} into itself: {dst}", path=dst)

        logger.info(f"Copying {src} to {dst}")
        copied = self._copyDir(fileSystem, src, dst, srcStat.mode, cancelEvent)
        logger.info(f"Copied {copied} files from {src} to {dst}")

        return copied

    def _copyDir(self, fileSystem, src, dst, mode, cancelEvent):
        try:
            fileSystem.makeDirs(dst, mode | POPULATE_MODE)
            fileSystem.chmod(dst, mode | POPULATE_MODE)
        except OSError as e:
            raise translateOSError(e, dst, "Directory creation") from e

        try:
            children = fileSystem.listDir(src)
        except OSError as e:
            raise translateOSError(e, src, "Directory listing") from e

        copied = 0
        for name, st in children:
            checkCancelled(cancelEvent, "Copy")

            srcPath = os.path.join(src, name)
            dstPath = os.path.join(dst, name)

            if st.isDir:
                copied += self._copyDir(fileSystem, srcPath, dstPath, st.mode, cancelEvent)
            elif st.isRegular:
                self._copyFile(fileSystem, srcPath, dstPath, st.mode)
                copied += 1
            else:
                logger.debug(f"Skip non-regular entry: {srcPath}")

        try:
            fileSystem.chmod(dst, mode)
        except OSError as e:
            raise translateOSError(e, dst, "Mode change") from e

        return copied

    def _copyFile(self, fileSystem, src, dst, mode):
        try:
            sf = fileSystem.open(src)
        except OSError as e:
            raise translateOSError(e, src, "File open") from e

        with sf:
            try:
                df = fileSystem.create(dst)
            except OSError as e:
                raise translateOSError(e, dst, "File creation") from e

            with df:
                try:
                    shutil.copyfileobj(sf, df, self.chunkSize)
                except OSError as e:
                    raise translateOSError(e, dst, "File copy") from e

        try:
            fileSystem.chmod(dst, mode)
        except OSError as e:
            raise translateOSError(e, dst, "Mode change") from e

        logger.debug(f"Copied {src} -> {dst} ({oct(mode)})")
        BoxEvent.copyFileDone.trigger(src=src, dst=dst, mode=mode)


def copy(dst: str, src: str, cancelEvent=None) -> int:
    """Copy the directory tree at src to dst. See TreeCopier.copy."""
    return TreeCopier().copy(dst, src, cancelEvent=cancelEvent)
