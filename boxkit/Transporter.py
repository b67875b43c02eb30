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

import posixpath

from dataclasses import dataclass
from typing import BinaryIO, Callable, Optional
from urllib.parse import urlparse

import requests

from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from boxkit.Kernel import getLogger, BoxEvent
from boxkit.Errors import IOFailureError, NetworkFailureError, checkCancelled
from boxkit.Progress import Progress
from boxkit.Settings import FETCH_TIMEOUT, PROGRESS_LOG_INTERVAL, TRANSFER_CHUNK_SIZE, USER_AGENT, SettingsGetter
from boxkit.Utils import flushPrint

logger = getLogger(__name__)


@dataclass
class TransferSession:
    """State of one fetch; contentLength is None when the server did not declare a usable length."""
    url: str
    contentLength: Optional[int] = None
    transferred: int = 0
    chunks: int = 0

    @property
    def percent(self) -> Optional[float]:
        if not self.contentLength or self.contentLength <= 0:
            return None
        return min(self.transferred * 100.0 / self.contentLength, 100.0)

    def advance(self, size: int):
        self.transferred += size
        self.chunks += 1


def parseContentLength(value) -> Optional[int]:
    """Content-Length header value as a positive int, or None when absent, invalid or zero."""
    try:
        length = int(value)
    except (TypeError, ValueError):
        return None
    return length if length > 0 else None


class Transporter:
    """
    Streams remote HTTP resources into writable sinks.

    Bodies are copied chunk by chunk and never held in memory as a whole.
    There is no retry and no resume; a stalled transfer blocks until the
    timeout (None by default) expires or the caller's cancel event is set.
    """

    def __init__(
        self,
        chunkSize=TRANSFER_CHUNK_SIZE,
        timeout=FETCH_TIMEOUT,
        useBar=None,
        loggerCallback=flushPrint,
        logInterval=PROGRESS_LOG_INTERVAL,
        session=None
    ):
        self.chunkSize = chunkSize
        self.timeout = timeout
        self.useBar = self._isCLIMode() if useBar is None else useBar
        self.loggerCallback = loggerCallback
        self.logInterval = logInterval
        self.session = session or self._createSession()

    @staticmethod
    def _isCLIMode():
        try:
            return SettingsGetter.getInstance().isCLIMode()
        except RuntimeError:
            return False

    @staticmethod
    def _createSession():
        session = requests.Session()

        # Retries are the caller's business
        adapter = HTTPAdapter(max_retries=Retry(total=0, read=False))
        session.mount('http://', adapter)
        session.mount('https://', adapter)

        session.headers.update({
            'User-Agent': USER_AGENT,
            # Byte counts must match the declared Content-Length
            'Accept-Encoding': 'identity',
        })
        return session

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, excType, excVal, excTb):
        self.close()

    def fetch(self, url: str, sink: BinaryIO, cancelEvent=None) -> TransferSession:
        """
        GET url and copy the whole body into sink.

        Raises:
            NetworkFailureError: connection failure, timeout, error status or broken body
            IOFailureError: writing to sink failed
        """
        return self._transfer(url, sink, cancelEvent=cancelEvent)

    def fetchWithProgress(
        self,
        url: str,
        sink: BinaryIO,
        cancelEvent=None,
        progressCallback: Optional[Callable[[TransferSession], None]] = None
    ) -> TransferSession:
        """
        Same as fetch(), reporting progress after every chunk.

        Progress is written to the output stream (tqdm bar in CLI mode, text
        lines through loggerCallback otherwise), passed to progressCallback
        and published as BoxEvent.fetchProgressUpdate. When the server gives
        no usable Content-Length only the byte count is reported.
        """
        progress = None

        def onStart(transferSession):
            nonlocal progress
            progress = Progress(
                transferSession.contentLength or 0,
                loggerCallback=self.loggerCallback,
                logInterval=self.logInterval,
                useBar=self.useBar,
                description=self._describe(url),
            )

        def onChunk(transferSession):
            progress.update(transferSession.transferred)

            if progressCallback:
                progressCallback(transferSession)
            BoxEvent.fetchProgressUpdate.trigger(session=transferSession)

        try:
            transferSession = self._transfer(url, sink, cancelEvent=cancelEvent, onStart=onStart, onChunk=onChunk)
        except Exception:
            if progress:
                progress.finishBar(complete=False)
            raise

        progress.update(transferSession.transferred, forceLog=True)
        progress.finishBar()

        return transferSession

    @staticmethod
    def _describe(url):
        return posixpath.basename(urlparse(url).path) or url

    def _transfer(self, url, sink, cancelEvent=None, onStart=None, onChunk=None):
        checkCancelled(cancelEvent, "Fetch")
        logger.info(f"Fetching {url}")

        try:
            response = self.session.get(url, stream=True, timeout=self.timeout)
        except requests.RequestException as e:
            raise NetworkFailureError(f"GET {url} failed: {e}", url=url) from e

        with response:
            if not response.ok:
                raise NetworkFailureError(
                    f"GET {url} returned HTTP {response.status_code} {response.reason}",
                    url=url,
                    statusCode=response.status_code
                )

            transferSession = TransferSession(url=url, contentLength=parseContentLength(
                response.headers.get('Content-Length')
            ))
            if transferSession.contentLength is None:
                logger.debug(f"No usable Content-Length for {url}, progress percentage disabled")

            if onStart:
                onStart(transferSession)

            try:
                for chunk in response.iter_content(chunk_size=self.chunkSize):
                    checkCancelled(cancelEvent, "Fetch")

                    if not chunk:
                        continue

                    try:
                        sink.write(chunk)
                    except OSError as e:
                        raise IOFailureError(f"Writing {url} to sink failed: {e}") from e

                    transferSession.advance(len(chunk))

                    if onChunk:
                        onChunk(transferSession)
            except requests.RequestException as e:
                raise NetworkFailureError(
                    f"Reading {url} failed after {transferSession.transferred} bytes: {e}", url=url
                ) from e

        logger.info(f"Fetched {url}: {transferSession.transferred} bytes in {transferSession.chunks} chunks")
        return transferSession


def fetch(url: str, sink: BinaryIO, cancelEvent=None, timeout=FETCH_TIMEOUT) -> TransferSession:
    """GET url into sink. See Transporter.fetch."""
    with Transporter(timeout=timeout) as transporter:
        return transporter.fetch(url, sink, cancelEvent=cancelEvent)


def fetchWithProgress(url: str, sink: BinaryIO, cancelEvent=None, timeout=FETCH_TIMEOUT) -> TransferSession:
    """GET url into sink while printing progress. See Transporter.fetchWithProgress."""
    with Transporter(timeout=timeout) as transporter:
        return transporter.fetchWithProgress(url, sink, cancelEvent=cancelEvent)
