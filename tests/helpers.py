"""Shared fixtures for the test suite."""
import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

ENV_NAMES = ('TALENT_DATA_DIR', 'TALENT_LOG_LEVEL', 'TALENT_CREATED_BY',
             'TALENT_HOST', 'TALENT_PORT', 'TALENT_CONFIG')


class TmpDirMixin(unittest.TestCase):
    """Creates a fresh temp directory for each test, cd's into it and hides
    any TALENT_* environment variables."""

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self._orig = os.getcwd()
        os.chdir(self.tmp)
        self._env = patch.dict(os.environ)
        self._env.start()
        for name in ENV_NAMES:
            os.environ.pop(name, None)

    def tearDown(self):
        self._env.stop()
        os.chdir(self._orig)
        shutil.rmtree(self.tmp, ignore_errors=True)

    def _path(self, name: str) -> str:
        return os.path.join(self.tmp, name)

    def _write(self, name: str, text: str, encoding: str = 'utf-8') -> str:
        path = self._path(name)
        with open(path, 'w', encoding=encoding) as f:
            f.write(text)
        return path
