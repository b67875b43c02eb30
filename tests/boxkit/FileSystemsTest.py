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
import unittest

from tests.BoxKitTestBase import BoxKitTestBase, writeFile
from boxkit.FileSystems import EntryKind, LocalFileSystem


class LocalFileSystemTest(BoxKitTestBase):

    def setUp(self):
        super().setUp()
        writeFile(self.path('root', 'b.txt'), 'bb', 0o600)
        writeFile(self.path('root', 'a', 'c.txt'), 'ccc', 0o644)
        os.makedirs(self.path('root', 'empty'))
        self.fileSystem = LocalFileSystem(self.path('root'))

    def testStat(self):
        st = self.fileSystem.stat(self.path('root', 'b.txt'))

        self.assertTrue(st.isRegular)
        self.assertFalse(st.isDir)
        self.assertEqual(st.size, 2)
        self.assertEqual(st.mode, 0o600)

    def testListDirSorted(self):
        names = [name for name, st in self.fileSystem.listDir(self.fileSystem.rootPath)]

        self.assertEqual(names, ['a', 'b.txt', 'empty'])

    def testWalkPreOrder(self):
        paths = [os.path.relpath(path, self.fileSystem.rootPath) for path, st in self.fileSystem.walk()]

        self.assertEqual(paths, ['.', 'a', os.path.join('a', 'c.txt'), 'b.txt', 'empty'])

    @unittest.skipUnless(hasattr(os, 'symlink'), "symlinks not supported")
    def testSymlinkNotFollowed(self):
        os.symlink(self.path('root', 'a'), self.path('root', 'link'))

        walked = {os.path.relpath(path, self.fileSystem.rootPath): st for path, st in self.fileSystem.walk()}

        self.assertEqual(walked['link'].kind, EntryKind.OTHER)
        self.assertNotIn(os.path.join('link', 'c.txt'), walked)

    def testArchiveName(self):
        self.assertEqual(self.fileSystem.archiveName(self.path('root', 'a', 'c.txt')), 'a/c.txt')

        single = LocalFileSystem(self.path('root', 'b.txt'))
        self.assertEqual(single.archiveName(single.rootPath), 'b.txt')

    @unittest.skipUnless(hasattr(os, 'symlink'), "symlinks not supported")
    def testIsWithinRoot(self):
        os.makedirs(self.path('outside'))
        os.symlink(self.path('outside'), self.path('root', 'out'))
        os.symlink('a', self.path('root', 'alias'))

        self.assertTrue(self.fileSystem.isWithinRoot(self.path('root', 'a', 'new.txt')))
        self.assertTrue(self.fileSystem.isWithinRoot(self.path('root', 'alias', 'c.txt')))
        self.assertFalse(self.fileSystem.isWithinRoot(self.path('root', 'out', 'new.txt')))
        self.assertFalse(self.fileSystem.isWithinRoot(self.path('root', 'out')))
        self.assertFalse(self.fileSystem.isWithinRoot(self.path('elsewhere')))

    def testMakeDirsAndChmod(self):
        target = self.path('new', 'deep', 'dir')

        self.fileSystem.makeDirs(target)
        self.fileSystem.makeDirs(target)
        self.fileSystem.chmod(target, 0o40750)

        self.assertMode(target, 0o750)

    def testCreateTruncates(self):
        target = self.path('root', 'b.txt')

        with self.fileSystem.create(target) as f:
            f.write(b'x')

        with self.fileSystem.open(target) as f:
            self.assertEqual(f.read(), b'x')


if __name__ == '__main__':
    unittest.main()
