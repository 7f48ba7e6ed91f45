"""
Tests for the analysis HTTP API.
"""

import asyncio
from unittest.mock import patch

from cloudsave.core.config import config
from cloudsave.services.analysis_service import analyze
from conftest import create_test_zip


def test_root_describes_service(client):
    """The root endpoint returns the service descriptor."""
    response = client.get('/')

    assert response.status_code == 200
    data = response.json()
    assert data['name'] == 'CloudSave'
    assert 'pricing_version' in data
    assert data['region'] == config.PRICING_REGION


def test_rules_endpoint_lists_registry(client):
    """The rules endpoint lists all fifteen rules in order."""
    response = client.get('/api/rules')

    assert response.status_code == 200
    data = response.json()
    assert data['rule_count'] == 15
    assert data['rules'][0]['id'] == 'rule-01'
    assert 'check' not in data['rules'][0]


def test_upload_terraform_file(client, terraform_main):
    """A Terraform upload returns a report."""
    response = client.post(
        '/api/analyze',
        files={'file': ('main.tf', terraform_main.encode('utf-8'), 'text/plain')},
    )

    assert response.status_code == 200
    data = response.json()
    assert data['status'] == 'ok'
    report = data['report']
    assert report['input_file_type'] == 'terraform'
    assert report['id'].startswith('rpt_')
    assert report['issues'][0]['severity'] == 'critical'
    assert report['cost_summary']['total_annual_saving'] == report['cost_summary']['total_monthly_saving'] * 12
    assert set(report['roadmap']) == {'quick_wins', 'medium_effort', 'needs_planning'}


def test_upload_zip_archive(client, terraform_main, ecs_task_json):
    """A ZIP upload is expanded and merged."""
    zip_data = create_test_zip({
        'main.tf': terraform_main,
        'task.json': ecs_task_json,
    })

    response = client.post(
        '/api/analyze',
        files={'file': ('infra.zip', zip_data, 'application/zip')},
    )

    assert response.status_code == 200
    report = response.json()['report']
    assert report['input_file_type'] == 'zip'
    assert 'ecs' in report['infra']
    assert 'rds' in report['infra']


def test_text_endpoint(client, cdk_stack_ts):
    """Text submissions are analyzed like uploads."""
    response = client.post(
        '/api/analyze/text',
        json={'file_name': 'stack.ts', 'content': cdk_stack_ts},
    )

    assert response.status_code == 200
    report = response.json()['report']
    assert report['input_file_type'] == 'cdk'
    assert 'Lambda' in report['detected_services']


def test_text_endpoint_requires_fields(client):
    """Missing fields are rejected by request validation."""
    response = client.post('/api/analyze/text', json={'content': 'x'})

    assert response.status_code == 422


def test_image_upload_is_unsupported(client):
    """Image uploads return 415."""
    response = client.post(
        '/api/analyze',
        files={'file': ('diagram.png', b'\x89PNG\r\n\x1a\n\x00\x00', 'image/png')},
    )

    assert response.status_code == 415


def test_unrecognised_file_is_unprocessable(client):
    """Files no extractor accepts return 422 with a generic message."""
    response = client.post(
        '/api/analyze',
        files={'file': ('notes.txt', b'hello', 'text/plain')},
    )

    assert response.status_code == 422
    assert 'Could not parse infrastructure' in response.json()['detail']


def test_too_many_archive_entries(client):
    """Archives over the entry limit return 413 with the count in the message."""
    zip_data = create_test_zip({f'module{i}.tf': '' for i in range(51)})

    response = client.post(
        '/api/analyze',
        files={'file': ('big.zip', zip_data, 'application/zip')},
    )

    assert response.status_code == 413
    assert response.json()['detail'] == 'ZIP contains 51 files, exceeding the limit of 50.'


def test_invalid_archive(client):
    """A .zip upload that is not a ZIP archive returns 400."""
    response = client.post(
        '/api/analyze',
        files={'file': ('broken.zip', b'not a zip', 'application/zip')},
    )

    assert response.status_code == 400


def test_oversized_upload_is_rejected(client, monkeypatch):
    """Uploads above the configured size limit return 413."""
    monkeypatch.setattr(config, 'MAX_FILE_SIZE_BYTES', 100)

    response = client.post(
        '/api/analyze',
        files={'file': ('main.tf', b'#' * 500, 'text/plain')},
    )

    assert response.status_code == 413


def test_oversized_text_submission_is_rejected(client, monkeypatch):
    """Text submissions whose content exceeds the limit return 413."""
    monkeypatch.setattr(config, 'MAX_FILE_SIZE_BYTES', 100)

    response = client.post(
        '/api/analyze/text',
        json={'file_name': 'main.tf', 'content': '#' * 500},
    )

    assert response.status_code == 413


def test_unexpected_error_returns_500_without_details(client, terraform_main):
    """Unexpected failures are reported without leaking internals."""
    with patch('cloudsave.api.analyze.analyze', side_effect=RuntimeError('secret internals')):
        response = client.post(
            '/api/analyze/text',
            json={'file_name': 'main.tf', 'content': terraform_main},
        )

    assert response.status_code == 500
    assert 'secret internals' not in response.text


def test_analysis_runs_off_the_event_loop(client, terraform_main):
    """The analysis pipeline runs in a worker thread, not on the event loop."""
    threads = []

    def record_thread(file_name, data):
        try:
            asyncio.get_running_loop()
            threads.append('event-loop')
        except RuntimeError:
            threads.append('worker')
        return analyze(file_name, data)

    with patch('cloudsave.api.analyze.analyze', side_effect=record_thread):
        upload = client.post(
            '/api/analyze',
            files={'file': ('main.tf', terraform_main.encode('utf-8'), 'text/plain')},
        )
        text = client.post(
            '/api/analyze/text',
            json={'file_name': 'main.tf', 'content': terraform_main},
        )

    assert upload.status_code == 200
    assert text.status_code == 200
    assert threads == ['worker', 'worker']
