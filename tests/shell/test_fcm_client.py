"""Tests for the FCM push transport client.

firebase_admin calls are mocked; messages are built with the real
messaging types.
"""

import threading
import time
from unittest.mock import MagicMock, patch

import pytest
from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from alertflow.core.errors import DispatchError, TransportUnavailableError
from alertflow.core.notification import PushNotification
from alertflow.shell.fcm_client import (
    APP_NAME,
    FCMClient,
    FCMConfig,
    build_android_config,
    build_apns_config,
)


@pytest.fixture
def notification():
    return PushNotification(
        title="🚨 EARTHQUAKE Alert",
        body="earthquake detected in SF (Magnitude: 7.2). Tap for details.",
        data={"alertId": "a1", "severity": "critical"},
        color="#8B0000",
        android_priority="max",
        urgent=True,
    )


@pytest.fixture
def app():
    return MagicMock(name="firebase_app")


@pytest.fixture
def client(app):
    client = FCMClient(FCMConfig(max_recipients_per_call=3))
    client._app = app
    return client


def _response(success, message_id=None, exception=None):
    response = MagicMock()
    response.success = success
    response.message_id = message_id
    response.exception = exception
    return response


class TestPayloadOptions:
    """Tests for platform-specific delivery options."""

    def test_android_config_for_urgent(self, notification):
        config = build_android_config(notification)

        assert config.priority == "high"
        assert config.notification.color == "#8B0000"
        assert config.notification.channel_id == "disaster_alerts"
        assert config.notification.priority == "max"

    def test_android_config_for_routine(self, notification):
        routine = PushNotification(
            title="t", body="b", data={}, color="#FFA500",
            android_priority="default", urgent=False,
        )
        assert build_android_config(routine).priority == "normal"

    def test_apns_config(self, notification):
        aps = build_apns_config(notification).payload.aps

        assert aps.alert.title == notification.title
        assert aps.sound == "default"
        assert aps.badge == 1
        assert aps.category == "DISASTER_ALERT"


class TestAppInitialization:
    """Tests for lazy firebase_admin app setup."""

    @patch("alertflow.shell.fcm_client.firebase_admin.initialize_app")
    @patch("alertflow.shell.fcm_client.credentials.ApplicationDefault")
    @patch("alertflow.shell.fcm_client.firebase_admin.get_app", side_effect=ValueError("no app"))
    def test_uses_application_default_credentials(self, mock_get_app, mock_adc, mock_init):
        client = FCMClient(FCMConfig(project_id="proj"))

        app = client.app

        mock_init.assert_called_once_with(
            mock_adc.return_value, {"projectId": "proj"}, name=APP_NAME
        )
        assert app is mock_init.return_value

    @patch("alertflow.shell.fcm_client.firebase_admin.initialize_app")
    @patch("alertflow.shell.fcm_client.credentials.Certificate")
    @patch("alertflow.shell.fcm_client.firebase_admin.get_app", side_effect=ValueError("no app"))
    def test_uses_service_account_file(self, mock_get_app, mock_cert, mock_init):
        client = FCMClient(FCMConfig(credentials_path="/secrets/sa.json"))

        client.app

        mock_cert.assert_called_once_with("/secrets/sa.json")
        mock_init.assert_called_once_with(mock_cert.return_value, {}, name=APP_NAME)

    @patch("alertflow.shell.fcm_client.firebase_admin.get_app")
    def test_reuses_existing_app(self, mock_get_app):
        client = FCMClient()

        assert client.app is mock_get_app.return_value
        mock_get_app.assert_called_once_with(APP_NAME)

    @patch("alertflow.shell.fcm_client.credentials.Certificate", side_effect=OSError("missing"))
    @patch("alertflow.shell.fcm_client.firebase_admin.get_app", side_effect=ValueError("no app"))
    def test_bad_credentials_make_transport_unavailable(self, mock_get_app, mock_cert):
        client = FCMClient(FCMConfig(credentials_path="/nope.json"))

        with pytest.raises(TransportUnavailableError):
            client.app

    @patch("alertflow.shell.fcm_client.firebase_admin.initialize_app")
    @patch("alertflow.shell.fcm_client.credentials.ApplicationDefault")
    @patch("alertflow.shell.fcm_client.firebase_admin.get_app", side_effect=ValueError("no app"))
    def test_concurrent_access_initializes_once(self, mock_get_app, mock_adc, mock_init):
        def slow_init(*args, **kwargs):
            time.sleep(0.05)
            return MagicMock(name="firebase_app")

        mock_init.side_effect = slow_init
        client = FCMClient()
        barrier = threading.Barrier(8)
        apps = []

        def worker():
            barrier.wait()
            apps.append(client.app)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        mock_init.assert_called_once()
        assert len(apps) == 8
        assert all(app is apps[0] for app in apps)

    @patch("alertflow.shell.fcm_client.firebase_admin.initialize_app")
    @patch("alertflow.shell.fcm_client.credentials.ApplicationDefault")
    @patch("alertflow.shell.fcm_client.firebase_admin.get_app")
    def test_app_registered_elsewhere_is_reused(self, mock_get_app, mock_adc, mock_init):
        existing = MagicMock(name="existing_app")
        mock_get_app.side_effect = [ValueError("no app"), existing]
        mock_init.side_effect = ValueError(
            f'Firebase app named "{APP_NAME}" already exists. This means you called '
            "initialize_app() more than once with the same app name."
        )
        client = FCMClient()

        assert client.app is existing
        assert mock_get_app.call_count == 2


class TestSendOne:
    """Tests for send_one()."""

    @patch("alertflow.shell.fcm_client.messaging.send", return_value="msg-1")
    def test_success(self, mock_send, client, app, notification):
        result = client.send_one("tok", notification)

        assert result.success
        assert result.message_id == "msg-1"
        message = mock_send.call_args.args[0]
        assert message.token == "tok"
        assert message.notification.title == notification.title
        assert message.data == notification.data
        assert mock_send.call_args.kwargs["app"] is app

    @patch("alertflow.shell.fcm_client.messaging.send")
    def test_unregistered_token(self, mock_send, client, notification):
        mock_send.side_effect = messaging.UnregisteredError("token gone")

        result = client.send_one("tok", notification)

        assert not result.success
        assert result.unregistered

    @patch("alertflow.shell.fcm_client.messaging.send")
    def test_other_failure(self, mock_send, client, notification):
        mock_send.side_effect = firebase_exceptions.UnavailableError("down")

        result = client.send_one("tok", notification)

        assert not result.success
        assert not result.unregistered
        assert "down" in result.error


class TestSendMany:
    """Tests for send_many()."""

    @patch("alertflow.shell.fcm_client.messaging.send_each_for_multicast")
    def test_per_recipient_results(self, mock_multicast, client, notification):
        mock_multicast.return_value = MagicMock(
            success_count=1,
            failure_count=2,
            responses=[
                _response(True, "m1"),
                _response(False, exception=messaging.UnregisteredError("gone")),
                _response(False, exception=firebase_exceptions.InternalError("oops")),
            ],
        )

        results = client.send_many(["a", "b", "c"], notification)

        assert [r.success for r in results] == [True, False, False]
        assert results[0].message_id == "m1"
        assert results[1].unregistered
        assert not results[2].unregistered
        message = mock_multicast.call_args.args[0]
        assert message.tokens == ["a", "b", "c"]

    def test_rejects_more_than_ceiling(self, client, notification):
        with pytest.raises(ValueError):
            client.send_many(["a", "b", "c", "d"], notification)

    @patch("alertflow.shell.fcm_client.messaging.send_each_for_multicast")
    def test_empty_token_list(self, mock_multicast, client, notification):
        assert client.send_many([], notification) == []
        mock_multicast.assert_not_called()

    @patch("alertflow.shell.fcm_client.messaging.send_each_for_multicast")
    def test_call_failure_raises_dispatch_error(self, mock_multicast, client, notification):
        mock_multicast.side_effect = firebase_exceptions.UnavailableError("down")

        with pytest.raises(DispatchError):
            client.send_many(["a"], notification)


class TestSendToTopic:
    """Tests for send_to_topic()."""

    @patch("alertflow.shell.fcm_client.messaging.send", return_value="topic-msg")
    def test_success(self, mock_send, client, notification):
        assert client.send_to_topic("alerts_critical", notification) == "topic-msg"
        assert mock_send.call_args.args[0].topic == "alerts_critical"

    @patch("alertflow.shell.fcm_client.messaging.send")
    def test_failure(self, mock_send, client, notification):
        mock_send.side_effect = firebase_exceptions.UnavailableError("down")

        with pytest.raises(DispatchError):
            client.send_to_topic("alerts_critical", notification)
