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
import logging
import platform
import threading
import json

# Error reporting is disabled unless a SENTRY_DSN secret is configured explicitly.
import sentry_sdk

from pathlib import Path

from signalslot import Signal

from sentry_sdk.integrations.logging import SentryHandler, LoggingIntegration
from sentry_sdk.integrations import atexit as sentryAtexit

PUBLIC_VERSION = '1.2.0'

APP_NAME = 'boxkit'

# Map string levels to logging constants for standard level names
LOG_LEVEL_MAPPING = {'DEBUG': logging.DEBUG, 'INFO': logging.INFO, 'WARNING': logging.WARNING, 'ERROR': logging.ERROR}


def configureGlobalLogLevel(logLevel):
    """
    Configure the global logging level for the application.
    This affects all loggers created via getLogger().

    Args:
        logLevel: Logging level (logging.DEBUG, logging.INFO, etc.)
    """
    rootLogger = logging.getLogger()
    rootLogger.setLevel(logLevel)

    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(name)s: %(message)s')

    # Add console handler if none exists
    if not rootLogger.handlers:
        consoleHandler = logging.StreamHandler()
        consoleHandler.setLevel(logLevel)
        consoleHandler.setFormatter(formatter)
        rootLogger.addHandler(consoleHandler)
    else:
        # Update existing handlers
        for handler in rootLogger.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(handler, SentryHandler):
                handler.setLevel(logLevel)
                handler.setFormatter(formatter)


if os.getenv('BOXKIT_LOGGING_LEVEL') and os.getenv('BOXKIT_LOGGING_LEVEL').upper() in LOG_LEVEL_MAPPING:
    configureGlobalLogLevel(LOG_LEVEL_MAPPING[os.getenv('BOXKIT_LOGGING_LEVEL').upper()])


def getLogger(name, version=PUBLIC_VERSION):
    """
    Get a logger with Sentry integration.

    Sentry is initialized at most once, and only when a SENTRY_DSN secret is
    available from SecretGetter. The returned logger carries the version in
    its extra context so that reported records can be traced to a release.

    Args:
        name: Logger name
        version: Version string for logging context
    """
    try:
        notInit = not sentry_sdk.get_client().is_active()
        sentryDsn = None

        if notInit:
            sentryDsn = SecretGetter.getInstance().get('SENTRY_DSN')

            if sentryDsn:
                # Suppress "sentry is attempting to send pending events..." on exit
                sentryAtexit.default_callback = lambda pending, timeout: None

                sentry_sdk.init(
                    dsn=sentryDsn,
                    default_integrations=False,
                    integrations=[
                        LoggingIntegration(),
                        sentryAtexit.AtexitIntegration(),
                    ],
                    release=version,
                )

        logger = logging.getLogger(name)

        if not any(isinstance(h, SentryHandler) for h in logger.handlers):
            formatter = logging.Formatter('%(asctime)s version[%(version)s] : %(message)s')

            syslog = SentryHandler()
            syslog.setFormatter(formatter)
            logger.addHandler(syslog)

        logger = logging.LoggerAdapter(logger, {'version': version or 'unknown'})

        if sentryDsn:
            logger.debug('Sentry initialized')

        return logger

    except Exception as e:
        fallbackLogger = logging.getLogger(name)

        # If Sentry setup fails, log the error and continue with standard logging
        fallbackLogger.warning(f"Failed to initialize Sentry: {e}")

        return fallbackLogger


class Singleton:
    """
    Thread-safe singleton base class.
    Subclasses override initialize() instead of __init__(); it runs once per class.
    """

    _instances = {}
    _lock = threading.Lock()

    def __new__(cls, *args, **kwargs):
        if cls not in cls._instances:
            with cls._lock:
                if cls not in cls._instances:
                    cls._instances[cls] = super().__new__(cls)
        return cls._instances[cls]

    def __init__(self, *args, **kwargs):
        if not hasattr(self, '_initialized'):
            self.initialize(*args, **kwargs)
            self._initialized = True

    def initialize(self, *args, **kwargs):
        pass

    @classmethod
    def getInstance(cls):
        """
        Static access method for the singleton instance.
        """
        if cls not in cls._instances:
            cls()
        return cls._instances[cls]


class EventService(Singleton):
    """
    Named publish/subscribe hub. Each registered event key owns one
    signalslot Signal; observers are called in subscription order with
    keyword arguments only.
    """

    def initialize(self):
        self.signals = {}

    def reset(self):
        """Drop every registered event. Tests use it for isolation."""
        self.signals.clear()

    def isRegistered(self, event):
        return event in self.signals

    def register(self, event):
        if self.isRegistered(event):
            return False
        self.signals[event] = Signal()
        return True

    def unregister(self, event):
        return self.signals.pop(event, None) is not None

    def subscribe(self, event, observer):
        """Connect observer; it must accept **kwargs. Subscribing twice is a no-op."""
        if not self.isRegistered(event):
            raise KeyError(f"You must register event '{event}' first.")
        self.signals[event].connect(observer)

    def unsubscribe(self, event, observer):
        if self.isRegistered(event):
            self.signals[event].disconnect(observer)

    def trigger(self, event, **kwargs):
        """Call the observers of event in order; one returning a value stops the rest. Unknown events are ignored."""
        if self.isRegistered(event):
            self.signals[event].emit(**kwargs)


class Event:
    """Handle on one EventService key"""

    def __init__(self, key):
        self.key = key
        self.eventService = EventService.getInstance()

    def register(self):
        return self.eventService.register(self.key)

    def subscribe(self, observer):
        return self.eventService.subscribe(self.key, observer)

    def unsubscribe(self, observer):
        return self.eventService.unsubscribe(self.key, observer)

    def trigger(self, **kwargs):
        return self.eventService.trigger(self.key, **kwargs)


class StorageLocator(Singleton):
    """
    Finds configuration files (.env, .secret) for boxkit.

    Search order: BOXKIT_STORAGE_LOCATION (when it names an existing
    directory), the working directory, ~/.boxkit, then the platform config
    directory. A file found nowhere resolves to the override directory when
    set, else to ~/.boxkit.
    """

    def initialize(self, appName=APP_NAME):
        self.appName = appName
        self.homeDir = os.path.expanduser(f'~{os.path.sep}.{appName}')
        self.platformDir = self._getPlatformDir()

    def _getPlatformDir(self):
        system = platform.system()

        if system == 'Windows':
            return os.path.join(os.getenv('APPDATA', os.path.expanduser('~')), self.appName)
        if system == 'Darwin':
            return os.path.expanduser(f'~/Library/Application Support/{self.appName}')
        return os.path.expanduser(f'~/.config/{self.appName}')

    def _getOverrideDir(self):
        location = os.getenv('BOXKIT_STORAGE_LOCATION')
        return location if location and os.path.isdir(location) else None

    def findStorage(self, filename):
        overrideDir = self._getOverrideDir()

        candidates = [os.path.abspath(filename), os.path.join(self.homeDir, filename),
                      os.path.join(self.platformDir, filename)]
        if overrideDir:
            candidates.insert(0, os.path.join(overrideDir, filename))

        for path in candidates:
            if os.path.exists(path):
                return path

        return os.path.join(overrideDir or self.homeDir, filename)

    def findConfig(self, filename):
        return self.findStorage(filename)


class SecretGetter(Singleton):
    """
    Looks up secrets in environment variables first, then in the .secret
    JSON file found by StorageLocator. Values are cached.
    """

    DEFAULT_SECRET_FILE = '.secret'

    def initialize(self, secretFileName=DEFAULT_SECRET_FILE):
        self.secretFileName = secretFileName
        self._cache = {}
        self._secretData = None

    def getPath(self):
        return StorageLocator.getInstance().findStorage(self.secretFileName)

    def _loadSecretFile(self):
        logger = logging.getLogger(__name__)

        if self._secretData is not None:
            return

        secretPath = self.getPath()

        if not os.path.exists(secretPath):
            self._secretData = {}
            return

        try:
            self._secretData = json.loads(Path(secretPath).read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load secret file {secretPath}: {e}")
            self._secretData = {}

        logger.info(f"Loaded secret file {secretPath}")

    def get(self, key: str):
        """
        Get secret value by key with caching.

        Returns:
            str or None: Secret value if found, None otherwise
        """
        if self._cache.get(key):
            return self._cache[key]

        value = os.getenv(key)
        if value:
            self._cache[key] = value
            return value

        self._loadSecretFile()

        value = self._secretData.get(key)
        if value:
            self._cache[key] = value

        return value


# Event pattern: RESTful + /[action] (create, update, get, delete, others...)
class BoxEvent:
    copyFileDone = Event('/copy/file/create')
    archiveEntryWrite = Event('/archive/entry/create')
    restoreEntryCreate = Event('/restore/entry/create')
    fetchProgressUpdate = Event('/fetch/progress/update')

    @classmethod
    def registerAll(cls):
        for value in vars(cls).values():
            if isinstance(value, Event):
                value.register()


BoxEvent.registerAll()
