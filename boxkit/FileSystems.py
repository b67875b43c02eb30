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
"""
FileSystem abstraction for the copier and the archive writer/reader.

LocalFileSystem wraps os.* calls and classifies every node with lstat, so
symbolic links are never followed while walking a tree. Directory listings
are sorted by name to make walks (and therefore archives) deterministic.
"""

import os
import posixpath
import stat as _stat

from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Iterator, List, Optional, Tuple

from boxkit.Kernel import getLogger

logger = getLogger(__name__)


class EntryKind(Enum):
    REGULAR = 'regular'
    DIRECTORY = 'directory'
    OTHER = 'other' # symlinks, fifos, sockets, devices


@dataclass
class Stat:
    """File/directory metadata"""
    size: int
    mtime: Optional[float]
    mode: int # permission bits only
    kind: EntryKind

    @property
    def isDir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    @property
    def isRegular(self) -> bool:
        return self.kind is EntryKind.REGULAR


def _toStat(st: os.stat_result) -> Stat:
    if _stat.S_ISREG(st.st_mode):
        kind = EntryKind.REGULAR
    elif _stat.S_ISDIR(st.st_mode):
        kind = EntryKind.DIRECTORY
    else:
        kind = EntryKind.OTHER

    return Stat(size=int(st.st_size), mtime=float(st.st_mtime), mode=_stat.S_IMODE(st.st_mode), kind=kind)


class LocalFileSystem:
    """
    Local filesystem backend rooted at a directory (or a single file).
    """

    def __init__(self, root: str):
        """
        Initialize LocalFileSystem.

        Args:
            root: Absolute or relative path to root directory
        """
        self.root = os.path.abspath(root)

        logger.debug(f"LocalFileSystem initialized: {self.root}")

    @property
    def rootPath(self) -> str:
        return self.root

    def stat(self, path: str) -> Stat:
        """Metadata of path, following a symlink at path itself."""
        return _toStat(os.stat(path))

    def lstat(self, path: str) -> Stat:
        """Metadata of path without following symlinks."""
        return _toStat(os.lstat(path))

    def listDir(self, path: str) -> List[Tuple[str, Stat]]:
        """
        List the direct children of a directory.

        Returns:
            (name, Stat) pairs sorted by name, classified without following symlinks
        """
        entries = []
        with os.scandir(path) as it:
            for entry in it:
                entries.append((entry.name, _toStat(entry.stat(follow_symlinks=False))))

        entries.sort(key=lambda item: item[0])
        return entries

    def walk(self, top: str = None) -> Iterator[Tuple[str, Stat]]:
        """
        Depth-first, pre-order walk.

        Args:
            top: Path to start from (defaults to the root)

        Yields:
            (path, Stat) for top itself and then every node below it
        """
        top = top or self.root
        topStat = self.lstat(top)
        yield top, topStat

        if topStat.isDir:
            yield from self._walkChildren(top)

    def _walkChildren(self, directory: str) -> Iterator[Tuple[str, Stat]]:
        for name, st in self.listDir(directory):
            path = os.path.join(directory, name)
            yield path, st

            if st.isDir:
                yield from self._walkChildren(path)

    def open(self, path: str) -> BinaryIO:
        return open(path, "rb")

    def create(self, path: str) -> BinaryIO:
        """Create or truncate a file for writing."""
        return open(path, "wb")

    def makeDirs(self, path: str, mode: int = 0o777):
        """Create path and missing ancestors; an existing directory is fine."""
        os.makedirs(path, mode=mode, exist_ok=True)

    def chmod(self, path: str, mode: int):
        os.chmod(path, _stat.S_IMODE(mode))

    def archiveName(self, path: str) -> str:
        """
        Entry name for path: relative to the root with POSIX separators.
        A root that is a single file is named by its base name.
        """
        rel = os.path.relpath(path, self.root)
        if rel == os.curdir:
            return os.path.basename(self.root)
        return rel.replace(os.sep, posixpath.sep)

    def isWithinRoot(self, path: str) -> bool:
        """Whether path stays under the root once every existing symlink on it is resolved."""
        realRoot = os.path.realpath(self.root)
        return os.path.commonpath([realRoot, os.path.realpath(path)]) == realRoot
