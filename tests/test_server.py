"""Tests for the HTTP interface."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from hassink.server import create_app, http_date, parse_page_number
from hassink.service import ScreensaverService

from .conftest import FakeSession, make_png


def build(config, session=None):
    service = ScreensaverService(config, session=session or FakeSession())
    return service, TestClient(create_app(service))


class TestPageNumbers:

    @pytest.mark.parametrize('path,expected', [('/', 1), ('/1', 1), ('/2', 2)])
    def test_valid(self, path, expected):
        assert parse_page_number(path, 2) == expected

    @pytest.mark.parametrize('path', ['/0', '/3', '/abc', '/-1', '/1.5', '/RELOAD', '/1/', '//1', '/ 1'])
    def test_invalid(self, path):
        assert parse_page_number(path, 2) is None


class TestScheduledMode:

    def test_page_never_rendered_is_404(self, make_config):
        service, client = build(make_config())

        response = client.get('/1')

        assert response.status_code == 404
        assert response.text == 'Image not found'

    def test_serves_stored_image(self, make_config):
        service, client = build(make_config())
        image = make_png()
        service.store.write(service.config.pages[0], image)
        _, modified = service.store.read(service.config.pages[0])

        response = client.get('/')

        assert response.status_code == 200
        assert response.content == image
        assert response.headers['content-type'] == 'image/png'
        assert response.headers['content-length'] == str(len(image))
        assert response.headers['last-modified'] == http_date(modified)

    def test_jpeg_content_type(self, make_config):
        service, client = build(make_config(IMAGE_FORMAT='jpeg'))
        service.store.write(service.config.pages[0], b'\xff\xd8jpeg')

        response = client.get('/1')

        assert response.headers['content-type'] == 'image/jpeg'

    def test_reload_renders_every_page_then_serves_them(self, make_config, two_page_env):
        session = FakeSession(images={'/lovelace/1': make_png(color=(0, 0, 0))})
        service, client = build(make_config(**two_page_env), session)

        response = client.post('/RELOAD')

        assert response.status_code == 200
        assert response.text == 'Reloaded'
        assert session.rendered == ['/lovelace/0', '/lovelace/1']
        assert client.get('/2').content == make_png(color=(0, 0, 0))

    def test_reload_path_is_case_insensitive(self, make_config):
        service, client = build(make_config())

        assert client.post('/reload').status_code == 200
        assert client.post('/ReLoAd').status_code == 200

    def test_reload_with_get_is_invalid(self, make_config):
        service, client = build(make_config())

        response = client.get('/RELOAD')

        assert response.status_code == 400
        assert service.session.rendered == []

    @pytest.mark.parametrize('path', ['/0', '/2', '/abc', '/-1'])
    def test_invalid_page_touches_nothing(self, make_config, path):
        service, client = build(make_config(EAGER_RERENDER='true'))

        response = client.get(f'{path}?batteryLevel=50')

        assert response.status_code == 400
        assert response.text == 'Invalid request'
        assert service.session.rendered == []
        assert service.battery.states == {}

    def test_battery_telemetry(self, make_config, two_page_env):
        service, client = build(make_config(**two_page_env))

        client.get('/2?batteryLevel=55&isCharging=Yes')
        client.get('/2?batteryLevel=200')

        state = service.battery.get(1)
        assert state.battery_level == 55
        assert state.is_charging is True
        assert service.battery.get(0) is None


class TestEagerMode:

    def test_every_request_renders(self, make_config, tmp_path):
        service, client = build(make_config(EAGER_RERENDER='true'))

        first = client.get('/')
        second = client.get('/')

        assert first.status_code == second.status_code == 200
        assert first.content == service.session.default
        assert 'last-modified' in first.headers
        assert 'last-modified' in second.headers
        assert service.session.rendered == ['/lovelace/0', '/lovelace/0']
        assert not (tmp_path / 'output').exists()

    def test_render_failure_is_500(self, make_config):
        service, client = build(make_config(EAGER_RERENDER='true'), FakeSession(images={'/lovelace/0': None}))

        response = client.get('/1?batteryLevel=20')

        assert response.status_code == 500
        assert response.text == 'Failed to render image'
        assert service.battery.get(0).battery_level == 20

    def test_reload_renders_without_storing(self, make_config, tmp_path):
        service, client = build(make_config(EAGER_RERENDER='true'))

        assert client.post('/RELOAD').status_code == 200
        assert service.session.rendered == ['/lovelace/0']
        assert not (tmp_path / 'output').exists()

    def test_last_modified_is_each_requests_render_time(self, make_config):
        session = FakeSession()
        service, client = build(make_config(EAGER_RERENDER='true'), session)
        times = [datetime(2026, 10, 19, 10, 0, 0, tzinfo=timezone.utc),
                 datetime(2026, 10, 19, 10, 0, 7, tzinfo=timezone.utc)]
        renders_seen = []

        def clock(tz=None):
            renders_seen.append(len(session.rendered))
            return times[len(renders_seen) - 1]

        with patch('hassink.server.datetime') as fake_datetime:
            fake_datetime.now.side_effect = clock
            first = client.get('/')
            second = client.get('/')

        assert renders_seen == [1, 2]
        assert first.headers['last-modified'] == 'Mon, 19 Oct 2026 10:00:00 GMT'
        assert second.headers['last-modified'] == 'Mon, 19 Oct 2026 10:00:07 GMT'


class TestDebugMode:

    def test_reload_then_serve(self, make_config):
        service, client = build(make_config(DEBUG='true'))

        assert client.post('/RELOAD').status_code == 200
        response = client.get('/1')

        assert response.status_code == 200
        assert response.content == service.session.default
