#!/usr/bin/env python3
"""
Route tests for the Talking Talent web API (talking_talent_gui.py) and the
OpenAPI document it serves.

Run with:
    python -m pytest tests/test_gui.py
"""
import datetime
import io
import json
import os
import shutil
import sys
import tempfile
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import talking_talent
import talking_talent_gui
from openapi_spec import build_spec

TODAY = datetime.date.today()
NEXT_MONTH = (TODAY + datetime.timedelta(days=30)).isoformat()


class GuiTestCase(unittest.TestCase):
    """Points the app at a tracker over a fresh temp data directory."""

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self._orig_tracker = talking_talent_gui.tracker
        talking_talent_gui.tracker = talking_talent.TalentTracker(
            config_path=None, data_dir=os.path.join(self.tmp, 'data'))
        talking_talent_gui.app.config['TESTING'] = True
        self.client = talking_talent_gui.app.test_client()

    def tearDown(self):
        talking_talent_gui.tracker = self._orig_tracker
        shutil.rmtree(self.tmp, ignore_errors=True)

    def _create_ba(self, first, level='Senior', manager=None):
        resp = self.client.post('/api/analysts', json={
            'first_name': first, 'last_name': 'Test', 'level': level,
            'line_manager_id': manager,
        })
        self.assertEqual(resp.status_code, 201, resp.get_json())
        return resp.get_json()

    def _create_round(self, quarter='Q1'):
        resp = self.client.post('/api/rounds', json={
            'name': f'{quarter} review', 'quarter': quarter, 'year': TODAY.year,
            'deadline': NEXT_MONTH,
        })
        self.assertEqual(resp.status_code, 201, resp.get_json())
        return resp.get_json()


# ===========================================================================
# Analysts
# ===========================================================================

class TestAnalystRoutes(GuiTestCase):

    def test_create_and_get(self):
        ba = self._create_ba('Sarah', 'Principal')
        resp = self.client.get(f"/api/analysts/{ba['id']}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()['first_name'], 'Sarah')

    def test_get_missing(self):
        resp = self.client.get('/api/analysts/missing')
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.get_json()['error'], 'Business analyst not found')

    def test_validation_error_is_400(self):
        resp = self.client.post('/api/analysts', json={'first_name': 'A'})
        self.assertEqual(resp.status_code, 400)
        body = resp.get_json()
        self.assertEqual(body['code'], 'VALIDATION_ERROR')
        self.assertIn('Last name is required', body['errors'])

    def test_wrong_typed_name_is_400(self):
        resp = self.client.post('/api/analysts', json={
            'first_name': 123, 'last_name': 'B', 'level': 'Lead'})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()['errors'], ['First name must be text'])
        ba = self._create_ba('Sarah')
        resp = self.client.put(f"/api/analysts/{ba['id']}", json={'last_name': 5})
        self.assertEqual(resp.status_code, 400)

    def test_unknown_manager_is_404(self):
        resp = self.client.post('/api/analysts', json={
            'first_name': 'A', 'last_name': 'B', 'level': 'Lead', 'line_manager_id': 'ghost'})
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.get_json()['code'], 'NOT_FOUND')

    def test_circular_update_is_409(self):
        top = self._create_ba('Top', 'Principal')
        low = self._create_ba('Low', 'Senior', manager=top['id'])
        resp = self.client.put(f"/api/analysts/{top['id']}",
                               json={'line_manager_id': low['id']})
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.get_json()['error'],
                         'Cannot create circular reporting relationship')

    def test_update_missing_is_404(self):
        resp = self.client.put('/api/analysts/missing', json={'first_name': 'X'})
        self.assertEqual(resp.status_code, 404)

    def test_list_filters(self):
        self._create_ba('Anna', 'Lead')
        gone = self._create_ba('Bob', 'Lead')
        self._create_ba('Cara', 'Senior')
        self.client.delete(f"/api/analysts/{gone['id']}")

        body = self.client.get('/api/analysts').get_json()
        self.assertEqual(body['count'], 2)
        body = self.client.get('/api/analysts?level=Lead').get_json()
        self.assertEqual([ba['first_name'] for ba in body['analysts']], ['Anna'])
        body = self.client.get('/api/analysts?search=cara').get_json()
        self.assertEqual([ba['first_name'] for ba in body['analysts']], ['Cara'])
        body = self.client.get('/api/analysts?include_inactive=1').get_json()
        self.assertEqual(body['count'], 3)
        self.assertEqual(self.client.get('/api/analysts?level=Boss').status_code, 400)

    def test_deactivate_and_reports(self):
        top = self._create_ba('Top', 'Principal')
        mid = self._create_ba('Mid', 'Lead', manager=top['id'])
        low = self._create_ba('Low', 'Senior', manager=mid['id'])
        resp = self.client.delete(f"/api/analysts/{mid['id']}")
        self.assertEqual(resp.get_json(), {'success': True})
        reports = self.client.get(f"/api/analysts/{top['id']}/reports").get_json()
        self.assertEqual([ba['id'] for ba in reports['reports']], [low['id']])
        self.assertEqual(self.client.delete('/api/analysts/missing').status_code, 404)

    def test_org_chart(self):
        top = self._create_ba('Top', 'Principal')
        self._create_ba('Low', 'Senior', manager=top['id'])
        chart = self.client.get('/api/analysts/org-chart').get_json()['org_chart']
        self.assertEqual(len(chart), 1)
        self.assertEqual(chart[0]['children'][0]['depth'], 1)

    def test_bulk_upload_text(self):
        csv_text = ('firstName,lastName,level,lineManagerName\n'
                    'Mike,Chen,Lead,\nJames,Wilson,Senior,Mike Chen\n')
        resp = self.client.post('/api/analysts/bulk', data=csv_text, content_type='text/csv')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()['created'], 2)

    def test_bulk_upload_multipart(self):
        data = {'file': (io.BytesIO(b'firstName,lastName,level\nA,B,Lead\n'), 'team.csv')}
        resp = self.client.post('/api/analysts/bulk', data=data,
                                content_type='multipart/form-data')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()['created'], 1)

    def test_bulk_upload_errors(self):
        resp = self.client.post('/api/analysts/bulk', data='firstName\nA\n',
                                content_type='text/csv')
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(resp.get_json()['success'])
        self.assertEqual(self.client.post('/api/analysts/bulk', data='',
                                          content_type='text/csv').status_code, 400)

    def test_bulk_template(self):
        resp = self.client.get('/api/analysts/bulk/template')
        self.assertEqual(resp.status_code, 200)
        self.assertIn('attachment', resp.headers['Content-Disposition'])
        self.assertTrue(resp.get_data(as_text=True).startswith('firstName,lastName'))


# ===========================================================================
# Rounds and reviews
# ===========================================================================

class TestRoundRoutes(GuiTestCase):

    def test_lifecycle(self):
        ba = self._create_ba('A')
        rnd = self._create_round()
        self.assertEqual(rnd['status'], 'Draft')

        resp = self.client.post(f"/api/rounds/{rnd['id']}/activate")
        self.assertEqual(resp.get_json()['status'], 'Active')
        self.assertEqual(self.client.post(f"/api/rounds/{rnd['id']}/activate").status_code, 409)

        resp = self.client.post(f"/api/rounds/{rnd['id']}/complete")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.get_json()['error'],
                         'Cannot complete round with incomplete reviews')

        self.client.post('/api/reviews', json={
            'round_id': rnd['id'], 'business_analyst_id': ba['id'],
            'promotion_readiness': 'Ready'})
        summary = self.client.get(f"/api/rounds/{rnd['id']}/summary").get_json()
        self.assertEqual(summary['completion_percentage'], 100)

        resp = self.client.post(f"/api/rounds/{rnd['id']}/complete")
        self.assertEqual(resp.get_json()['status'], 'Completed')
        self.assertEqual(self.client.put(f"/api/rounds/{rnd['id']}",
                                         json={'name': 'x'}).status_code, 409)

    def test_wrong_typed_name_is_400(self):
        resp = self.client.post('/api/rounds', json={
            'name': 7, 'quarter': 'Q1', 'year': TODAY.year, 'deadline': NEXT_MONTH})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()['errors'], ['Round name must be text'])
        rnd = self._create_round('Q3')
        resp = self.client.put(f"/api/rounds/{rnd['id']}", json={'description': 12})
        self.assertEqual(resp.status_code, 400)

    def test_duplicate_period_is_409(self):
        self._create_round('Q2')
        resp = self.client.post('/api/rounds', json={
            'name': 'again', 'quarter': 'Q2', 'year': TODAY.year, 'deadline': NEXT_MONTH})
        self.assertEqual(resp.status_code, 409)

    def test_list_and_status_filter(self):
        first = self._create_round('Q1')
        self._create_round('Q2')
        self.client.post(f"/api/rounds/{first['id']}/activate")
        self.assertEqual(len(self.client.get('/api/rounds').get_json()['rounds']), 2)
        drafts = self.client.get('/api/rounds?status=Draft').get_json()['rounds']
        self.assertEqual([r['quarter'] for r in drafts], ['Q2'])
        active = self.client.get('/api/rounds/active').get_json()['rounds']
        self.assertEqual([r['id'] for r in active], [first['id']])

    def test_deadlines(self):
        rnd = self._create_round()
        self.client.post(f"/api/rounds/{rnd['id']}/activate")
        body = self.client.get('/api/rounds/deadlines').get_json()
        self.assertEqual(body['upcoming'][0]['days_remaining'], 30)
        self.assertEqual(body['overdue'], [])

    def test_delete_draft(self):
        rnd = self._create_round()
        self.assertEqual(self.client.delete(f"/api/rounds/{rnd['id']}").status_code, 200)
        self.assertEqual(self.client.get(f"/api/rounds/{rnd['id']}").status_code, 404)
        self.assertEqual(self.client.delete(f"/api/rounds/{rnd['id']}").status_code, 404)

    def test_summary_missing_round(self):
        self.assertEqual(self.client.get('/api/rounds/missing/summary').status_code, 404)

    def test_session_view(self):
        top = self._create_ba('Top', 'Principal')
        low = self._create_ba('Low', 'Senior', manager=top['id'])
        rnd = self._create_round()
        self.client.post(f"/api/rounds/{rnd['id']}/activate")
        self.client.post('/api/reviews', json={
            'round_id': rnd['id'], 'business_analyst_id': low['id']})

        body = self.client.get(f"/api/rounds/{rnd['id']}/session").get_json()
        self.assertEqual([e['ba']['id'] for e in body['entries']], [top['id'], low['id']])
        self.assertIsNone(body['entries'][0]['review'])
        self.assertFalse(body['entries'][1]['review']['is_complete'])
        self.assertIsNone(body['entries'][1]['previous_review'])
        self.assertEqual(body['summary']['total_bas'], 2)


class TestReviewRoutes(GuiTestCase):

    def setUp(self):
        super().setUp()
        self.ba = self._create_ba('A')
        self.round = self._create_round()
        self.client.post(f"/api/rounds/{self.round['id']}/activate")

    def _post_review(self, **extra):
        payload = {'round_id': self.round['id'], 'business_analyst_id': self.ba['id']}
        payload.update(extra)
        return self.client.post('/api/reviews', json=payload)

    def test_create_update_delete(self):
        resp = self._post_review(actions=['Mentor a junior'])
        self.assertEqual(resp.status_code, 201)
        review = resp.get_json()
        self.assertFalse(review['is_complete'])

        resp = self.client.put(f"/api/reviews/{review['id']}",
                               json={'promotion_readiness': 'Near Ready'})
        self.assertTrue(resp.get_json()['is_complete'])

        self.assertEqual(self.client.get(f"/api/reviews/{review['id']}").status_code, 200)
        self.assertEqual(self.client.delete(f"/api/reviews/{review['id']}").status_code, 200)
        self.assertEqual(self.client.get(f"/api/reviews/{review['id']}").status_code, 404)

    def test_duplicate_is_409(self):
        self._post_review()
        self.assertEqual(self._post_review().status_code, 409)

    def test_flag_without_details_is_400(self):
        resp = self._post_review(wellbeing_concerns={'has_issues': True})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()['errors'],
                         ['Wellbeing concerns details are required when issues are indicated'])

    def test_wrong_typed_section_is_400(self):
        resp = self._post_review(wellbeing_concerns=True)
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()['errors'], ['Wellbeing concerns must be an object'])
        resp = self._post_review(general_notes=['x'])
        self.assertEqual(resp.status_code, 400)

    def test_filters(self):
        other = self._create_ba('B')
        self._post_review()
        self.client.post('/api/reviews', json={
            'round_id': self.round['id'], 'business_analyst_id': other['id']})
        self.assertEqual(len(self.client.get('/api/reviews').get_json()['reviews']), 2)
        by_round = self.client.get(f"/api/reviews?round_id={self.round['id']}").get_json()
        self.assertEqual(len(by_round['reviews']), 2)
        by_ba = self.client.get(f"/api/reviews?analyst_id={other['id']}").get_json()
        self.assertEqual(len(by_ba['reviews']), 1)
        both = self.client.get(
            f"/api/reviews?round_id={self.round['id']}&analyst_id={self.ba['id']}").get_json()
        self.assertEqual(both['reviews'][0]['business_analyst_id'], self.ba['id'])
        mine = self.client.get(f"/api/analysts/{self.ba['id']}/reviews").get_json()
        self.assertEqual(len(mine['reviews']), 1)

    def test_trends(self):
        self._post_review(promotion_readiness='Ready')
        trend = self.client.get(f"/api/analysts/{self.ba['id']}/trend").get_json()
        self.assertEqual(trend['trend'], 'New')
        self.assertEqual(len(trend['reviews']), 1)
        self.assertEqual(self.client.get('/api/analysts/missing/trend').status_code, 404)

        body = self.client.get('/api/trends').get_json()
        self.assertEqual(body['summary']['New'], 1)
        self.assertEqual(body['summary']['total'], 1)
        self.assertEqual(self.client.get('/api/trends?trend=Sideways').status_code, 400)


# ===========================================================================
# Data management, dashboard and docs
# ===========================================================================

class TestDataRoutes(GuiTestCase):

    def test_sample_data_and_dashboard(self):
        resp = self.client.post('/api/sample-data')
        self.assertEqual(resp.status_code, 201)
        dashboard = self.client.get('/api/dashboard').get_json()
        self.assertEqual(dashboard['active_bas'], 8)
        self.assertEqual(dashboard['active_rounds'], [])
        self.assertEqual(self.client.post('/api/sample-data').status_code, 409)

    def test_export_then_import(self):
        self.client.post('/api/sample-data')
        resp = self.client.get('/api/export')
        self.assertEqual(resp.status_code, 200)
        self.assertIn('talking-talent-export_', resp.headers['Content-Disposition'])
        exported = resp.get_data(as_text=True)

        self.assertEqual(self.client.delete('/api/data').status_code, 400)
        self.assertEqual(self.client.delete('/api/data?confirm=yes').status_code, 200)
        self.assertEqual(self.client.get('/api/data/stats').get_json()['counts'],
                         {'business_analysts': 0, 'talent_rounds': 0, 'reviews': 0})

        resp = self.client.post('/api/import', data=exported, content_type='application/json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()['imported'], 9)

    def test_import_multipart(self):
        doc = json.dumps({'business_analysts': [{'id': 'x1', 'first_name': 'X',
                                                 'last_name': 'Y', 'level': 'Lead'}]})
        data = {'file': (io.BytesIO(doc.encode('utf-8')), 'backup.json')}
        resp = self.client.post('/api/import', data=data, content_type='multipart/form-data')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.client.get('/api/analysts/x1').status_code, 200)

    def test_import_rejects_garbage(self):
        resp = self.client.post('/api/import', data='{nope', content_type='application/json')
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()['errors'], ['Invalid JSON format'])

    def test_stats_and_status(self):
        self._create_ba('A')
        stats = self.client.get('/api/data/stats').get_json()
        self.assertEqual(stats['counts']['business_analysts'], 1)
        self.assertGreater(stats['storage_bytes']['total'], 0)
        status = self.client.get('/api/status').get_json()
        self.assertEqual(status['status'], 'ok')


class TestDocs(GuiTestCase):

    def test_openapi_json(self):
        resp = self.client.get('/api/openapi.json')
        self.assertEqual(resp.status_code, 200)
        spec = resp.get_json()
        self.assertEqual(spec['openapi'], '3.0.3')
        self.assertIn('/api/analysts', spec['paths'])

    def test_swagger_ui(self):
        resp = self.client.get('/api/docs')
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b'swagger-ui', resp.data)

    def test_index_redirects_to_docs(self):
        resp = self.client.get('/')
        self.assertEqual(resp.status_code, 302)
        self.assertTrue(resp.headers['Location'].endswith('/api/docs'))


class TestOpenApiSpec(unittest.TestCase):

    def setUp(self):
        self.spec = build_spec(server_url='http://localhost:5000')

    def test_server_url(self):
        self.assertEqual(self.spec['servers'][0]['url'], 'http://localhost:5000')

    def test_every_route_is_documented(self):
        documented = set()
        for path, item in self.spec['paths'].items():
            flask_path = path.replace('{', '<').replace('}', '>')
            for method in item:
                if method != 'parameters':
                    documented.add((flask_path, method.upper()))

        for rule in talking_talent_gui.app.url_map.iter_rules():
            if not rule.rule.startswith('/api/'):
                continue
            for method in rule.methods - {'HEAD', 'OPTIONS', 'PATCH'}:
                self.assertIn((rule.rule, method), documented)

    def test_refs_resolve(self):
        schemas = self.spec['components']['schemas']

        def walk(node):
            if isinstance(node, dict):
                ref = node.get('$ref')
                if ref:
                    self.assertIn(ref.rsplit('/', 1)[-1], schemas)
                for value in node.values():
                    walk(value)
            elif isinstance(node, list):
                for value in node:
                    walk(value)

        walk(self.spec)


if __name__ == '__main__':
    unittest.main()
