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

import gettext
import locale
import os

from babel import Locale, UnknownLocaleError

from boxkit.Kernel import PUBLIC_VERSION, Singleton, getLogger

logger = getLogger(__name__, version=PUBLIC_VERSION)


class I18nManager(Singleton):
    """
    gettext based translation of user facing messages (progress text, CLI output).

    Language selection:
        - BOXKIT_LANGUAGE environment variable when set
        - otherwise the OS locale, normalized with babel
        - English when neither names a language with a compiled catalog
          under boxkit/locales/<language>/LC_MESSAGES/messages.mo
    """

    DOMAIN = 'messages'

    DEFAULT_LANGUAGE = 'en'

    def initialize(self):
        self.localeDir = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'locales')
        self.supportedLanguages = self._findSupportedLanguages()
        self.currentLanguage = self._normalizeLanguageCode(os.getenv('BOXKIT_LANGUAGE') or self._detectOSLanguage())
        self.translationCache = {}

        if self.currentLanguage not in self.supportedLanguages:
            logger.debug(f"Unsupported language '{self.currentLanguage}', falling back to {self.DEFAULT_LANGUAGE}")
            self.currentLanguage = self.DEFAULT_LANGUAGE

        logger.debug(f"I18n initialized with language: {self.currentLanguage}, locale dir: {self.localeDir}")

    def _findSupportedLanguages(self):
        """English plus every language that ships a compiled catalog."""
        languages = [self.DEFAULT_LANGUAGE]
        if not os.path.isdir(self.localeDir):
            return languages

        for name in sorted(os.listdir(self.localeDir)):
            if os.path.exists(os.path.join(self.localeDir, name, 'LC_MESSAGES', f'{self.DOMAIN}.mo')):
                languages.append(name)
        return languages

    def _detectOSLanguage(self):
        osLocale = locale.getlocale()[0]
        return osLocale or self.DEFAULT_LANGUAGE

    def _normalizeLanguageCode(self, code):
        """
        Normalize language code to the supported format using babel.

        Examples:
            'zh_TW' -> 'zh_Hant'
            'zh-CN' -> 'zh_Hans'
            'en_US' -> 'en'
        """
        try:
            babelLocale = Locale.parse(code.replace('-', '_'), sep='_')
        except (UnknownLocaleError, ValueError, TypeError) as e:
            logger.debug(f"Could not parse locale {code}: {e}")
            return self.DEFAULT_LANGUAGE

        if babelLocale.language == 'zh':
            if babelLocale.script == 'Hant' or babelLocale.territory in ('TW', 'HK', 'MO'):
                return 'zh_Hant'
            return 'zh_Hans'

        return babelLocale.language

    def _getTranslation(self, language):
        if language in self.translationCache:
            return self.translationCache[language]

        moFile = os.path.join(self.localeDir, language, 'LC_MESSAGES', f'{self.DOMAIN}.mo')
        if os.path.exists(moFile):
            translation = gettext.translation(self.DOMAIN, localedir=self.localeDir, languages=[language], fallback=True)
        else:
            translation = gettext.NullTranslations()

        self.translationCache[language] = translation
        return translation

    def _(self, message):
        return self._getTranslation(self.currentLanguage).gettext(message)

    def getLanguage(self):
        return self.currentLanguage


def _(message):
    """Translate message to the current language."""
    return I18nManager.getInstance()._(message)
