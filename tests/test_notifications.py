import threading

import resend

from notifications import ResendTransport


def test_resend_key_stays_set_across_concurrent_sends(monkeypatch):
    monkeypatch.setattr(resend, "api_key", None)
    seen = []
    first_in_flight = threading.Event()
    second_done = threading.Event()

    def fake_send(payload):
        if payload["subject"] == "first":
            first_in_flight.set()
            second_done.wait(timeout=5)
        seen.append((payload["subject"], resend.api_key))
        return {"id": "msg"}

    monkeypatch.setattr(resend.Emails, "send", staticmethod(fake_send))
    transport = ResendTransport("re_test_key")

    worker = threading.Thread(target=transport.send, args=("shop@example.com", ["a@example.com"], "first", "<p>1</p>", "1"))
    worker.start()
    first_in_flight.wait(timeout=5)
    assert transport.send("shop@example.com", ["b@example.com"], "second", "<p>2</p>", "2") is True
    second_done.set()
    worker.join(timeout=5)

    assert sorted(seen) == [("first", "re_test_key"), ("second", "re_test_key")]
    assert resend.api_key == "re_test_key"


def test_unconfigured_transport_skips_without_clearing_the_key(monkeypatch):
    monkeypatch.setattr(resend, "api_key", "re_live_key")
    assert ResendTransport("").send("shop@example.com", ["a@example.com"], "hi", "<p>hi</p>", "hi") is False
    assert resend.api_key == "re_live_key"
