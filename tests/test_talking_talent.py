#!/usr/bin/env python3
"""
Tests for talking_talent.py: configuration loading, the TalentTracker
integration point and the command-line interface.

Run with:
    python -m pytest tests/test_talking_talent.py
"""
import io
import json
import os
import sys
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import talking_talent
from talent.errors import TalentError
from helpers import TmpDirMixin


# ===========================================================================
# Configuration
# ===========================================================================

class TestLoadConfig(TmpDirMixin):

    def test_defaults_when_file_missing(self):
        config = talking_talent.load_config(self._path('missing.json'))
        self.assertEqual(config, talking_talent.DEFAULT_CONFIG)

    def test_file_values(self):
        path = self._write('config.json', json.dumps({'data_dir': 'elsewhere', 'port': '8080'}))
        config = talking_talent.load_config(path)
        self.assertEqual(config['data_dir'], 'elsewhere')
        self.assertEqual(config['port'], 8080)
        self.assertEqual(config['created_by'], 'system')

    def test_env_overrides_file(self):
        path = self._write('config.json', json.dumps({'data_dir': 'from-file'}))
        os.environ['TALENT_DATA_DIR'] = 'from-env'
        os.environ['TALENT_CREATED_BY'] = 'hr-team'
        config = talking_talent.load_config(path)
        self.assertEqual(config['data_dir'], 'from-env')
        self.assertEqual(config['created_by'], 'hr-team')

    def test_corrupt_file_raises(self):
        path = self._write('config.json', '{broken')
        with self.assertRaises(TalentError) as ctx:
            talking_talent.load_config(path)
        self.assertEqual(ctx.exception.code, 'CONFIG_ERROR')

    def test_non_object_raises(self):
        path = self._write('config.json', '[1, 2]')
        with self.assertRaises(TalentError):
            talking_talent.load_config(path)

    def test_bad_port_raises(self):
        os.environ['TALENT_PORT'] = 'http'
        with self.assertRaises(TalentError):
            talking_talent.load_config(None)


# ===========================================================================
# TalentTracker
# ===========================================================================

class TestTalentTracker(TmpDirMixin):

    def _tracker(self):
        return talking_talent.TalentTracker(config_path=None, data_dir=self._path('data'))

    def test_wires_services_to_data_dir(self):
        tracker = self._tracker()
        ba = tracker.analyst_service.create({'first_name': 'A', 'last_name': 'B',
                                             'level': 'Lead'})
        self.assertTrue(os.path.exists(os.path.join(self._path('data'),
                                                    'tt_business_analysts.json')))
        self.assertEqual(self._tracker().analyst_service.get_by_id(ba['id'])['level'], 'Lead')

    def test_created_by_from_config(self):
        path = self._write('config.json', json.dumps({'created_by': 'people-team'}))
        tracker = talking_talent.TalentTracker(config_path=path, data_dir=self._path('data'))
        tracker.create_sample_data()
        self.assertEqual(tracker.round_service.get_all()[0]['created_by'], 'people-team')

    def test_reload_picks_up_external_changes(self):
        tracker = self._tracker()
        other = self._tracker()
        other.analyst_service.create({'first_name': 'A', 'last_name': 'B', 'level': 'Lead'})
        self.assertEqual(tracker.analyst_service.get_all(), [])
        tracker.reload()
        self.assertEqual(len(tracker.analyst_service.get_all()), 1)

    def test_dashboard(self):
        tracker = self._tracker()
        tracker.create_sample_data()
        rnd = tracker.round_service.get_all()[0]
        tracker.round_service.activate(rnd['id'])

        dashboard = tracker.get_dashboard()
        self.assertEqual(dashboard['active_bas'], 8)
        self.assertEqual(len(dashboard['active_rounds']), 1)
        self.assertEqual(dashboard['active_rounds'][0]['summary']['total_bas'], 8)
        self.assertEqual(dashboard['upcoming_deadlines'][0]['days_remaining'], 90)
        self.assertEqual(dashboard['overdue_rounds'], [])

    def test_historical_trends_filters(self):
        tracker = self._tracker()
        tracker.create_sample_data()
        self.assertEqual(len(tracker.get_historical_trends()), 8)
        self.assertEqual(len(tracker.get_historical_trends(level='Lead')), 2)
        self.assertEqual(len(tracker.get_historical_trends(trend='New')), 8)
        self.assertEqual(tracker.get_historical_trends(trend='Improving'), [])


# ===========================================================================
# Command line
# ===========================================================================

class TestCli(TmpDirMixin):

    def _run(self, *args):
        buf = io.StringIO()
        with patch('sys.stdout', buf):
            code = talking_talent.main(['--data-dir', self._path('data')] + list(args))
        return code, buf.getvalue()

    def test_dashboard_is_default(self):
        code, out = self._run()
        self.assertEqual(code, 0)
        self.assertIn('Talking Talent dashboard', out)
        self.assertIn('Active business analysts:', out)

    def test_csv_template(self):
        code, out = self._run('--csv-template')
        self.assertEqual(code, 0)
        self.assertTrue(out.startswith('firstName,lastName,email,level'))

    def test_sample_data_then_org_chart(self):
        self.assertEqual(self._run('--sample-data')[0], 0)
        code, out = self._run('--org-chart')
        self.assertEqual(code, 0)
        self.assertIn('Sarah Johnson', out)
        self.assertIn('Casey Anderson', out)

    def test_list_with_level(self):
        self._run('--sample-data')
        code, out = self._run('--list', '--level', 'Lead')
        self.assertIn('Mike Chen', out)
        self.assertIn('Emma Davis', out)
        self.assertNotIn('Casey Anderson', out)
        self.assertIn('2 business analyst(s)', out)

    def test_round_lifecycle_commands(self):
        self._run('--sample-data')
        tracker = talking_talent.TalentTracker(config_path=None, data_dir=self._path('data'))
        round_id = tracker.round_service.get_all()[0]['id']

        self.assertEqual(self._run('--activate', round_id)[0], 0)
        code, out = self._run('--summary', round_id)
        self.assertEqual(code, 0)
        self.assertIn('0%', out)

        code, out = self._run('--complete', round_id)
        self.assertEqual(code, 1)
        self.assertIn('Cannot complete round with incomplete reviews', out)

    def test_unknown_round(self):
        code, out = self._run('--activate', 'nope')
        self.assertEqual(code, 1)
        self.assertIn('Round not found', out)

    def test_export_import(self):
        self._run('--sample-data')
        export_path = self._path('backup.json')
        code, out = self._run('--export', export_path)
        self.assertEqual(code, 0)
        with open(export_path, encoding='utf-8') as f:
            self.assertEqual(len(json.load(f)['business_analysts']), 8)

        self.assertEqual(self._run('--clear-data')[0], 1)
        self.assertEqual(self._run('--clear-data', '--yes')[0], 0)
        code, out = self._run('--import', export_path)
        self.assertEqual(code, 0)
        self.assertIn('Imported 9 record(s)', out)

    def test_import_csv(self):
        path = self._write('team.csv', 'firstName,lastName,level,lineManagerName\n'
                                       'Mike,Chen,Lead,\nJames,Wilson,Senior,Mike Chen\n')
        code, out = self._run('--import-csv', path)
        self.assertEqual(code, 0)
        self.assertIn('Created 2 business analyst(s)', out)

    def test_missing_file_reported(self):
        code, out = self._run('--import', self._path('nope.json'))
        self.assertEqual(code, 1)
        self.assertIn('File error', out)

    def test_non_utf8_file_reported(self):
        path = self._path('latin1.json')
        with open(path, 'wb') as f:
            f.write('{"name": "Zoë"}'.encode('latin-1'))
        code, out = self._run('--import', path)
        self.assertEqual(code, 1)
        self.assertIn('File error: not UTF-8 text', out)

        csv_path = self._write('team.csv', 'firstName,lastName,level\nZoë,B,Lead\n',
                               encoding='latin-1')
        code, out = self._run('--import-csv', csv_path)
        self.assertEqual(code, 1)
        self.assertIn('File error: not UTF-8 text', out)

    def test_bad_config_reported(self):
        path = self._write('config.json', '{broken')
        buf = io.StringIO()
        with patch('sys.stdout', buf):
            code = talking_talent.main(['--config', path])
        self.assertEqual(code, 1)
        self.assertIn('Error parsing config file', buf.getvalue())


if __name__ == '__main__':
    unittest.main()
