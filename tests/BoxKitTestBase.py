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

import hashlib
import os
import stat
import tempfile
import threading
import unittest

from http.server import ThreadingHTTPServer, BaseHTTPRequestHandler

from boxkit.Utils import getAvailablePort


# ---------------------------
# File I/O helpers
# ---------------------------
def writeFile(path, content, mode=None):
    """Write bytes (or text) to path, creating parents, and optionally chmod it"""
    os.makedirs(os.path.dirname(path), exist_ok=True)
    if isinstance(content, str):
        content = content.encode('utf-8')

    with open(path, 'wb') as f:
        f.write(content)

    if mode is not None:
        os.chmod(path, mode)


def getFileHash(path):
    """Get the SHA-256 hash of a file"""
    sha256 = hashlib.sha256()
    with open(path, 'rb') as f:
        for block in iter(lambda: f.read(65536), b''):
            sha256.update(block)
    return sha256.hexdigest()


def collectFiles(root):
    """Map of relative POSIX path -> (content, permission bits) for every regular file under root"""
    result = {}
    for dirPath, dirNames, fileNames in os.walk(root):
        for fileName in fileNames:
            path = os.path.join(dirPath, fileName)
            st = os.lstat(path)
            if not stat.S_ISREG(st.st_mode):
                continue

            relPath = os.path.relpath(path, root).replace(os.sep, '/')
            with open(path, 'rb') as f:
                result[relPath] = (f.read(), stat.S_IMODE(st.st_mode))
    return result


def collectDirectories(root):
    """Map of relative POSIX path -> permission bits for every directory under root"""
    result = {}
    for dirPath, dirNames, fileNames in os.walk(root):
        for dirName in dirNames:
            path = os.path.join(dirPath, dirName)
            st = os.lstat(path)
            if stat.S_ISDIR(st.st_mode):
                result[os.path.relpath(path, root).replace(os.sep, '/')] = stat.S_IMODE(st.st_mode)
    return result


def makeAllWritable(root):
    """Give the owner rwx on every directory so a tree with read-only parts can be removed"""
    for dirPath, dirNames, fileNames in os.walk(root):
        for dirName in dirNames:
            path = os.path.join(dirPath, dirName)
            if not os.path.islink(path):
                os.chmod(path, 0o700)


# ---------------------------
# Local HTTP server
# ---------------------------
class Route:
    """A canned HTTP response.

    contentLength: None sends the real body length, False omits the header
    (body delimited by connection close), an int is sent verbatim.
    """

    def __init__(self, body=b'', status=200, contentLength=None, chunkSize=1024, truncateAt=None):
        self.body = body
        self.status = status
        self.contentLength = contentLength
        self.chunkSize = chunkSize
        self.truncateAt = truncateAt


class ContentHandler(BaseHTTPRequestHandler):
    # HTTP/1.0: the connection closes after each response
    protocol_version = 'HTTP/1.0'

    def do_GET(self):
        self.server.requestHeaders.append(dict(self.headers))

        route = self.server.routes.get(self.path)
        if route is None:
            self.send_error(404, 'Not Found')
            return

        self.send_response(route.status)
        self.send_header('Content-Type', 'application/octet-stream')
        if route.contentLength is None:
            self.send_header('Content-Length', str(len(route.body)))
        elif route.contentLength is not False:
            self.send_header('Content-Length', str(route.contentLength))
        self.end_headers()

        body = route.body if route.truncateAt is None else route.body[:route.truncateAt]
        for offset in range(0, len(body), route.chunkSize):
            self.wfile.write(body[offset:offset + route.chunkSize])
            self.wfile.flush()

    def log_message(self, format, *args):
        pass


class ContentServer:
    """ThreadingHTTPServer on 127.0.0.1 serving a dict of path -> Route"""

    def __init__(self, routes=None):
        self.port = getAvailablePort()
        self.httpd = ThreadingHTTPServer(('127.0.0.1', self.port), ContentHandler)
        self.httpd.routes = routes or {}
        self.httpd.requestHeaders = []
        self.thread = None

    @property
    def routes(self):
        return self.httpd.routes

    @property
    def requestHeaders(self):
        return self.httpd.requestHeaders

    def url(self, path):
        return f'http://127.0.0.1:{self.port}{path}'

    def start(self):
        self.thread = threading.Thread(target=self.httpd.serve_forever, daemon=True)
        self.thread.start()
        return self

    def stop(self):
        self.httpd.shutdown()
        self.httpd.server_close()
        if self.thread:
            self.thread.join(timeout=5)


# ---------------------------
# Base test class
# ---------------------------
class BoxKitTestBase(unittest.TestCase):
    """Base class providing a private temporary directory per test"""

    def setUp(self):
        self._tempDirObj = tempfile.TemporaryDirectory()
        self.tempDir = self._tempDirObj.name

    def tearDown(self):
        makeAllWritable(self.tempDir)
        self._tempDirObj.cleanup()

    def path(self, *parts):
        return os.path.join(self.tempDir, *parts)

    def assertMode(self, path, expectedMode):
        actualMode = stat.S_IMODE(os.lstat(path).st_mode)
        self.assertEqual(oct(actualMode), oct(expectedMode), f"Unexpected mode for {path}")
