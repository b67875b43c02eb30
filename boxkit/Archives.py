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
Streaming tar.gz archives of directory trees.

ArchiveWriter walks a tree once and feeds the compressed container to any
number of sinks at the same time. ArchiveReader consumes such a container
front to back (no seeking) and materializes it under a destination root.

Entry names are paths relative to the archived root with POSIX separators;
the reader joins them under its destination and refuses names that are
absolute or climb out of it, by name or through a symlink already there.
"""

import gzip
import os
import posixpath
import tarfile
import zlib

from dataclasses import dataclass
from typing import BinaryIO, List

from boxkit.Kernel import getLogger, BoxEvent
from boxkit.Errors import (
    DecodeFailureError, IOFailureError, UnsupportedEntryKindError, translateOSError, checkCancelled
)
from boxkit.FileSystems import EntryKind, LocalFileSystem, Stat
from boxkit.Settings import COPY_CHUNK_SIZE

logger = getLogger(__name__)

REGULAR_TYPES = (tarfile.REGTYPE, tarfile.AREGTYPE, tarfile.CONTTYPE)

# Owner needs rwx on a restored directory until all of its entries are written
POPULATE_MODE = 0o700


@dataclass
class FileEntry:
    """One archived filesystem node. Only REGULAR entries carry a body."""
    path: str
    mode: int
    size: int
    kind: EntryKind

    @classmethod
    def fromStat(cls, path: str, st: Stat) -> 'FileEntry':
        size = st.size if st.isRegular else 0
        return cls(path=path, mode=st.mode, size=size, kind=st.kind)

    @classmethod
    def fromTarInfo(cls, info: tarfile.TarInfo) -> 'FileEntry':
        if info.type in REGULAR_TYPES:
            kind = EntryKind.REGULAR
        elif info.type == tarfile.DIRTYPE:
            kind = EntryKind.DIRECTORY
        else:
            raise UnsupportedEntryKindError(
                f"Unhandled entry type ({info.type!r}) for {info.name}", path=info.name, typeFlag=info.type
            )

        return cls(path=info.name, mode=info.mode & 0o7777, size=info.size if kind is EntryKind.REGULAR else 0, kind=kind)

    def toTarInfo(self, mtime=None) -> tarfile.TarInfo:
        info = tarfile.TarInfo(self.path)
        info.mode = self.mode
        if mtime is not None:
            info.mtime = int(mtime)

        if self.kind is EntryKind.DIRECTORY:
            info.type = tarfile.DIRTYPE
            info.size = 0
        else:
            info.type = tarfile.REGTYPE
            info.size = self.size

        return info


class MultiWriter:
    """Duplicates every write to all sinks, in order. The sinks stay open."""

    def __init__(self, sinks):
        self.sinks = list(sinks)
        self.written = 0

    def write(self, data):
        for sink in self.sinks:
            sink.write(data)

        self.written += len(data)
        return len(data)

    def flush(self):
        for sink in self.sinks:
            if hasattr(sink, 'flush'):
                sink.flush()


class EndMarkerTarInfo(tarfile.TarInfo):
    """Flags the archive it is read from once the zero end-of-archive block shows up"""

    @classmethod
    def fromtarfile(cls, tar):
        try:
            return super().fromtarfile(tar)
        except tarfile.EOFHeaderError:
            tar.endMarkerRead = True
            raise


class StreamTarFile(tarfile.TarFile):
    """
    tarfile stops quietly at an empty or short header once past the first
    member, so a stream cut between entries looks complete. endMarkerRead
    tells the two apart.
    """
    tarinfo = EndMarkerTarInfo
    endMarkerRead = False


class ArchiveWriter:
    """
    Serializes a directory tree into a gzip-compressed tar stream.

    By default only regular files become entries, so directories without
    regular files do not survive a round trip. Set includeDirectories to
    also emit explicit directory entries.
    """

    def __init__(self, includeDirectories=False, compressLevel=9, chunkSize=COPY_CHUNK_SIZE):
        self.includeDirectories = includeDirectories
        self.compressLevel = compressLevel
        self.chunkSize = chunkSize

    def archive(self, rootPath: str, *sinks: BinaryIO, cancelEvent=None) -> List[FileEntry]:
        """
        Write the archive of rootPath to every sink in a single pass.

        Args:
            rootPath: Directory (or single regular file) to archive
            sinks: Writable binary streams; all receive identical bytes
            cancelEvent: Optional threading.Event checked between entries

        Returns:
            FileEntry list in the order the entries were written

        Raises:
            NotFoundError: rootPath does not exist
            PermissionDeniedError, IOFailureError: a stat/open/read or sink write failed
        """
        if not sinks:
            raise ValueError("At least one sink is required")

        fileSystem = LocalFileSystem(rootPath)
        writer = MultiWriter(sinks)
        entries = []

        # Fail before anything reaches the sinks when the root is missing
        try:
            fileSystem.lstat(fileSystem.rootPath)
        except OSError as e:
            raise translateOSError(e, rootPath, "Stat") from e

        logger.info(f"Archiving {fileSystem.rootPath} to {len(sinks)} sink(s)")

        try:
            with gzip.GzipFile(fileobj=writer, mode='wb', compresslevel=self.compressLevel) as gz, \
                 tarfile.open(fileobj=gz, mode='w|', bufsize=self.chunkSize) as tar:
                for path, st in fileSystem.walk():
                    checkCancelled(cancelEvent, "Archive")

                    if st.isDir:
                        if self.includeDirectories and path != fileSystem.rootPath:
                            entries.append(self._addDirectory(tar, fileSystem, path, st))
                    elif st.isRegular:
                        entries.append(self._addFile(tar, fileSystem, path, st))
                    else:
                        logger.debug(f"Skip non-regular entry: {path}")
        except OSError as e:
            raise translateOSError(e, e.filename or rootPath, "Archive") from e

        logger.info(f"Archived {len(entries)} entries, {writer.written} bytes written")
        return entries

    def _addDirectory(self, tar, fileSystem, path, st):
        entry = FileEntry.fromStat(fileSystem.archiveName(path), st)
        tar.addfile(entry.toTarInfo(st.mtime))

        logger.debug(f"Archived directory {entry.path} ({oct(entry.mode)})")
        BoxEvent.archiveEntryWrite.trigger(entry=entry)
        return entry

    def _addFile(self, tar, fileSystem, path, st):
        entry = FileEntry.fromStat(fileSystem.archiveName(path), st)

        try:
            f = fileSystem.open(path)
        except OSError as e:
            raise translateOSError(e, path, "File open") from e

        with f:
            try:
                # addfile copies exactly entry.size bytes and fails if the file shrank
                tar.addfile(entry.toTarInfo(st.mtime), f)
            except OSError as e:
                raise IOFailureError(f"Archive of {path} failed: {e}", path=path) from e

        logger.debug(f"Archived {entry.path} ({entry.size} bytes, {oct(entry.mode)})")
        BoxEvent.archiveEntryWrite.trigger(entry=entry)
        return entry


class ArchiveReader:
    """
    Restores a gzip-compressed tar stream under a destination directory.

    Regular files and directories are supported; any other entry type stops
    the restore with UnsupportedEntryKindError. There is no rollback: a
    failure leaves the entries restored so far in place.
    """

    def __init__(self, chunkSize=COPY_CHUNK_SIZE):
        self.chunkSize = chunkSize

    def restore(self, destRoot: str, source: BinaryIO, cancelEvent=None) -> List[FileEntry]:
        """
        Read the archive from source and write its entries under destRoot.

        Args:
            destRoot: Destination directory, created if missing
            source: Readable binary stream positioned at the start of the archive
            cancelEvent: Optional threading.Event checked between entries

        Returns:
            FileEntry list in archive order

        Raises:
            DecodeFailureError: corrupt, truncated or unsafe archive
            UnsupportedEntryKindError: entry type other than regular file or directory
            PermissionDeniedError, IOFailureError: writing the destination failed
        """
        fileSystem = LocalFileSystem(destRoot)
        entries = []
        directories = []

        logger.info(f"Restoring archive into {fileSystem.rootPath}")

        try:
            fileSystem.makeDirs(fileSystem.rootPath)
        except OSError as e:
            raise translateOSError(e, fileSystem.rootPath, "Directory creation") from e

        try:
            # GzipFile raises EOFError on a missing trailer and BadGzipFile on a CRC/length mismatch
            with gzip.GzipFile(fileobj=source, mode='rb') as gz:
                with StreamTarFile.open(fileobj=gz, mode='r|') as tar:
                    for info in tar:
                        checkCancelled(cancelEvent, "Restore")

                        entry = FileEntry.fromTarInfo(info)
                        target = self._resolveTarget(fileSystem, entry.path)

                        if entry.kind is EntryKind.DIRECTORY:
                            self._restoreDirectory(fileSystem, target, entry)
                            directories.append((target, entry.mode))
                        else:
                            self._restoreFile(tar, info, fileSystem, target, entry)

                        entries.append(entry)
                        BoxEvent.restoreEntryCreate.trigger(entry=entry, target=target)

                    if not tar.endMarkerRead:
                        raise DecodeFailureError(
                            f"Archive ended without an end-of-archive marker after {len(entries)} entries"
                        )

                # The trailer is only verified once the whole gzip member has been read
                while gz.read(self.chunkSize):
                    pass
        except (tarfile.TarError, zlib.error, EOFError, gzip.BadGzipFile) as e:
            raise DecodeFailureError(f"Corrupt or truncated archive: {e}") from e
        except OSError as e:
            raise translateOSError(e, e.filename or '<archive source>', "Archive read") from e

        # Deepest first, so a read-only parent does not block its children
        for target, mode in reversed(directories):
            try:
                fileSystem.chmod(target, mode)
            except OSError as e:
                raise translateOSError(e, target, "Mode change") from e

        logger.info(f"Restored {len(entries)} entries into {fileSystem.rootPath}")
        return entries

    def _resolveTarget(self, fileSystem, name):
        normalized = posixpath.normpath(name)

        if posixpath.isabs(name) or normalized in ('.', '..') or normalized.startswith('../'):
            raise DecodeFailureError(f"Unsafe entry name: {name}", path=name)

        target = os.path.join(fileSystem.rootPath, *normalized.split('/'))

        # Symlinks already present under the destination must not lead the write elsewhere
        if not fileSystem.isWithinRoot(target):
            raise DecodeFailureError(f"Entry {name} resolves outside {fileSystem.rootPath}", path=name)

        return target

    def _restoreDirectory(self, fileSystem, target, entry):
        try:
            fileSystem.makeDirs(target)
            fileSystem.chmod(target, entry.mode | POPULATE_MODE)
        except OSError as e:
            raise translateOSError(e, target, "Directory creation") from e

        logger.debug(f"Restored directory {target}")

    def _restoreFile(self, tar, info, fileSystem, target, entry):
        try:
            fileSystem.makeDirs(os.path.dirname(target))
            f = fileSystem.create(target)
        except OSError as e:
            raise translateOSError(e, target, "File creation") from e

        body = tar.extractfile(info)
        copied = 0

        with f:
            while copied < entry.size:
                chunk = body.read(min(self.chunkSize, entry.size - copied))
                if not chunk:
                    raise DecodeFailureError(
                        f"Unexpected end of archive in {entry.path}: {copied}/{entry.size} bytes", path=entry.path
                    )

                try:
                    f.write(chunk)
                except OSError as e:
                    raise translateOSError(e, target, "File write") from e

                copied += len(chunk)

        try:
            fileSystem.chmod(target, entry.mode)
        except OSError as e:
            raise translateOSError(e, target, "Mode change") from e

        logger.debug(f"Restored {target} ({copied} bytes, {oct(entry.mode)})")


def archive(rootPath: str, *sinks: BinaryIO, includeDirectories=False, cancelEvent=None) -> List[FileEntry]:
    """Archive rootPath into every sink. See ArchiveWriter.archive."""
    return ArchiveWriter(includeDirectories=includeDirectories).archive(rootPath, *sinks, cancelEvent=cancelEvent)


def restore(destRoot: str, source: BinaryIO, cancelEvent=None) -> List[FileEntry]:
    """Restore the archive read from source under destRoot. See ArchiveReader.restore."""
    return ArchiveReader().restore(destRoot, source, cancelEvent=cancelEvent)
