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

import errno


class BoxError(Exception):
    """Base exception for archive and transfer errors"""

    def __init__(self, message, path=None):
        super().__init__(message)
        self.message = message
        self.path = path


class NotFoundError(BoxError):
    """Raised when a source path does not exist"""
    pass


class PermissionDeniedError(BoxError):
    """Raised when creating a path or setting its mode is refused"""
    pass


class IOFailureError(BoxError):
    """Raised when reading, writing or copying fails mid-stream"""
    pass


class DecodeFailureError(BoxError):
    """Raised when a compressed container is corrupt, truncated or unsafe"""
    pass


class UnsupportedEntryKindError(BoxError):
    """Raised when a container entry type cannot be materialized on disk"""

    def __init__(self, message, path=None, typeFlag=None):
        super().__init__(message, path=path)
        self.typeFlag = typeFlag


class NetworkFailureError(BoxError):
    """Raised when a fetch fails at transport level or with an error status"""

    def __init__(self, message, url=None, statusCode=None):
        super().__init__(message)
        self.url = url
        self.statusCode = statusCode


class TransferCancelledError(BoxError):
    """Raised when the caller's cancel event is set during an operation"""
    pass


def translateOSError(error: OSError, path: str, operation: str) -> BoxError:
    """
    Map an OSError to the BoxError taxonomy.

    The caller raises the result with ``raise ... from error`` so the
    original exception stays attached.

    Args:
        error: The OSError that occurred
        path: Path the operation worked on
        operation: Description of the operation (e.g., "File read", "Mode change")
    """
    message = f"{operation} failed for {path}: {error.strerror or error}"

    if isinstance(error, FileNotFoundError):
        return NotFoundError(message, path=path)

    if isinstance(error, PermissionError) or error.errno in (errno.EACCES, errno.EPERM):
        return PermissionDeniedError(message, path=path)

    return IOFailureError(message, path=path)


def checkCancelled(cancelEvent, operation):
    """Raise TransferCancelledError when the caller asked to stop"""
    if cancelEvent is not None and cancelEvent.is_set():
        raise TransferCancelledError(f"{operation} cancelled")
