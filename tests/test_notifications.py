# tests/test_notifications.py
import json

import httpx

from savings_service.credentials import CredentialStore
from savings_service.notifications import ExpoPushNotifier, NullNotifier, is_expo_push_token, notify_safely

from .conftest import FailingNotifier


class FakeBackgroundTasks:
    def __init__(self):
        self.tasks = []

    def add_task(self, func, *args, **kwargs):
        self.tasks.append((func, args, kwargs))

    def run(self):
        return [func(*args, **kwargs) for func, args, kwargs in self.tasks]


def make_user_with_devices(db, *tokens):
    store = CredentialStore(db)
    user = store.create_user("push@example.com", "hash")
    for i, token in enumerate(tokens):
        store.create_device(user.id, f"device-{i}", token)
    db.commit()
    return user.id


def recording_client(status_code=200):
    requests = []

    def handler(request: httpx.Request):
        requests.append(json.loads(request.content))
        return httpx.Response(status_code, json={"data": []})

    return httpx.Client(transport=httpx.MockTransport(handler)), requests


def test_is_expo_push_token():
    assert is_expo_push_token("ExponentPushToken[abc]")
    assert is_expo_push_token("ExpoPushToken[abc]")
    assert not is_expo_push_token("random-token")
    assert not is_expo_push_token(None)


def test_sends_only_to_valid_expo_tokens(db):
    user_id = make_user_with_devices(db, "ExponentPushToken[one]", "garbage", None, "ExpoPushToken[two]")
    client, requests = recording_client()

    ExpoPushNotifier(push_url="https://push.test/send", client=client).send_to_user(db, user_id, "Hi", "Body", {"k": "v"})

    assert len(requests) == 1
    assert [m["to"] for m in requests[0]] == ["ExponentPushToken[one]", "ExpoPushToken[two]"]
    assert requests[0][0] == {"to": "ExponentPushToken[one]", "sound": "default", "title": "Hi", "body": "Body", "data": {"k": "v"}}


def test_no_request_without_tokens(db):
    user_id = make_user_with_devices(db, None)
    client, requests = recording_client()
    ExpoPushNotifier(client=client).send_to_user(db, user_id, "Hi", "Body")
    assert requests == []


def test_http_error_is_logged_not_raised(db):
    user_id = make_user_with_devices(db, "ExponentPushToken[one]")
    client, requests = recording_client(status_code=500)
    notifier = ExpoPushNotifier(client=client)

    notifier.send_to_user(db, user_id, "Hi", "Body")
    assert len(requests) == 1
    assert notifier.deliver([{"to": "ExponentPushToken[one]"}], user_id, "Hi") is False


def test_background_delivery_runs_after_request(db):
    user_id = make_user_with_devices(db, "ExponentPushToken[one]")
    client, requests = recording_client()
    tasks = FakeBackgroundTasks()

    ExpoPushNotifier(client=client, background_tasks=tasks).send_to_user(db, user_id, "Hi", "Body")
    assert requests == []
    assert tasks.run() == [True]
    assert len(requests) == 1


def test_notify_safely_swallows_errors(db):
    notify_safely(FailingNotifier(), db, 1, "Hi", "Body")
    notify_safely(None, db, 1, "Hi", "Body")
    notify_safely(NullNotifier(), db, 1, "Hi", "Body")
