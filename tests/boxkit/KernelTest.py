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

import json
import os
import tempfile
import unittest

from unittest.mock import patch

from signalslot.exceptions import SlotMustAcceptKeywords

from boxkit.Kernel import EventService, Event, BoxEvent, StorageLocator, SecretGetter


class EventServiceTest(unittest.TestCase):
    """
    Test case for the singleton, signalslot-based EventService.
    """

    def setUp(self):
        self.e = EventService.getInstance()
        self.e.reset()

    def tearDown(self):
        self.e.reset()
        BoxEvent.registerAll()

    def testIsSingleton(self):
        self.assertIs(EventService.getInstance(), EventService.getInstance())
        self.assertIs(self.e, EventService())

    def testTriggerCallsObservers(self):
        log = []

        def observer1(value, **kwargs):
            log.append(('observer1', value))

        def observer2(value, **kwargs):
            log.append(('observer2', value))

        self.assertTrue(self.e.register('/test/event'))
        self.assertFalse(self.e.register('/test/event'))

        self.e.subscribe('/test/event', observer1)
        self.e.subscribe('/test/event', observer2)
        self.e.trigger('/test/event', value=1)
        self.assertEqual(log, [('observer1', 1), ('observer2', 1)])

        self.e.unsubscribe('/test/event', observer1)
        self.e.trigger('/test/event', value=2)
        self.assertEqual(log[-1], ('observer2', 2))
        self.assertEqual(len(log), 3)

    def testDuplicateSubscriptionIgnored(self):
        log = []

        def observer(**kwargs):
            log.append(kwargs)

        self.e.register('E1')
        self.e.subscribe('E1', observer)
        self.e.subscribe('E1', observer)
        self.e.trigger('E1', a=1)

        self.assertEqual(log, [{'a': 1}])

    def testObserverMustAcceptKeywords(self):
        def observer(value):
            pass

        self.e.register('E1')
        with self.assertRaises(SlotMustAcceptKeywords):
            self.e.subscribe('E1', observer)

    def testReturningObserverStopsDispatch(self):
        log = []

        def first(**kwargs):
            log.append('first')
            return 'handled'

        def second(**kwargs):
            log.append('second')

        self.e.register('E1')
        self.e.subscribe('E1', first)
        self.e.subscribe('E1', second)
        self.e.trigger('E1')

        self.assertEqual(log, ['first'])

    def testUnregister(self):
        log = []

        self.e.register('E1')
        self.e.subscribe('E1', lambda **kwargs: log.append(kwargs))

        self.assertTrue(self.e.unregister('E1'))
        self.e.trigger('E1', a=1)

        self.assertEqual(log, [])
        self.assertFalse(self.e.isRegistered('E1'))

    def testUnregisteredEvent(self):
        with self.assertRaises(KeyError):
            self.e.subscribe('missing', lambda **kwargs: None)

        # Triggering or unsubscribing an unknown event is a no-op
        self.e.trigger('missing', a=1)
        self.e.unsubscribe('missing', lambda **kwargs: None)
        self.assertFalse(self.e.unregister('missing'))

    def testEventWrapper(self):
        log = []
        event = Event('/wrapper/test')

        self.assertTrue(event.register())
        event.subscribe(lambda path, **kwargs: log.append(path))
        event.trigger(path='a/b')

        self.assertEqual(log, ['a/b'])

    def testBoxEventsRegistered(self):
        BoxEvent.registerAll()

        for event in (
            BoxEvent.copyFileDone, BoxEvent.archiveEntryWrite, BoxEvent.restoreEntryCreate,
            BoxEvent.fetchProgressUpdate
        ):
            self.assertTrue(self.e.isRegistered(event.key))


class StorageLocatorTest(unittest.TestCase):

    def setUp(self):
        self.tempDir = tempfile.TemporaryDirectory()
        self.locator = StorageLocator.getInstance()

    def tearDown(self):
        self.tempDir.cleanup()

    def testEnvOverride(self):
        path = os.path.join(self.tempDir.name, 'settings.json')
        with open(path, 'w') as f:
            f.write('{}')

        with patch.dict(os.environ, {'BOXKIT_STORAGE_LOCATION': self.tempDir.name}):
            self.assertEqual(self.locator.findStorage('settings.json'), path)

    def testEnvOverrideForNewFile(self):
        with patch.dict(os.environ, {'BOXKIT_STORAGE_LOCATION': self.tempDir.name}):
            found = self.locator.findConfig('not-created-yet.json')

        self.assertEqual(found, os.path.join(self.tempDir.name, 'not-created-yet.json'))

    def testDefaultsToHome(self):
        with patch.dict(os.environ, {'BOXKIT_STORAGE_LOCATION': ''}):
            found = self.locator.findStorage('boxkit-missing-file.json')

        self.assertEqual(os.path.dirname(found), os.path.expanduser(f'~{os.path.sep}.boxkit'))


class SecretGetterTest(unittest.TestCase):

    def setUp(self):
        self.tempDir = tempfile.TemporaryDirectory()
        self.getter = SecretGetter.getInstance()
        self.getter.initialize()

    def tearDown(self):
        self.getter.initialize()
        self.tempDir.cleanup()

    def testEnvironmentFirst(self):
        with patch.dict(os.environ, {'BOXKIT_TEST_SECRET': 'fromEnv'}):
            self.assertEqual(self.getter.get('BOXKIT_TEST_SECRET'), 'fromEnv')

    def testSecretFile(self):
        with open(os.path.join(self.tempDir.name, '.secret'), 'w') as f:
            json.dump({'BOXKIT_FILE_SECRET': 'fromFile'}, f)

        with patch.dict(os.environ, {'BOXKIT_STORAGE_LOCATION': self.tempDir.name}):
            self.assertEqual(self.getter.get('BOXKIT_FILE_SECRET'), 'fromFile')
            self.assertIsNone(self.getter.get('BOXKIT_UNKNOWN_SECRET'))

    def testBrokenSecretFile(self):
        with open(os.path.join(self.tempDir.name, '.secret'), 'w') as f:
            f.write('{not json')

        with patch.dict(os.environ, {'BOXKIT_STORAGE_LOCATION': self.tempDir.name}):
            self.assertIsNone(self.getter.get('BOXKIT_FILE_SECRET'))


if __name__ == '__main__':
    unittest.main()
