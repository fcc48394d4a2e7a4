"""
Integration tests for the publisher facade.
Walks the create/subscribe/publish/delete lifecycle end to end.
"""
import unittest

from notifyhub import (
    DeliveryState,
    InvalidEndpointError,
    NotFoundError,
    NotificationPublisher,
    Settings,
    StaticOptOutOracle,
    SubscriptionState,
)
from stubs import CollectingConfirmationChannel, RecordingSleep, RecordingTransport


class TestNotificationPublisher(unittest.TestCase):

    def setUp(self):
        self.transport = RecordingTransport()
        self.channel = CollectingConfirmationChannel()
        self.oracle = StaticOptOutOracle()
        self.hub = NotificationPublisher(
            self.transport,
            opt_out_oracle=self.oracle,
            confirmation_channel=self.channel,
            sleep=RecordingSleep(),
        )

    def tearDown(self):
        self.hub.close()

    def test_alerts_scenario(self):
        first = self.hub.create_topic("alerts")
        second = self.hub.create_topic("alerts")
        self.assertEqual(first.topic_id, second.topic_id)

        sub = self.hub.subscribe_email(first.topic_id, "a@x.com")
        self.assertEqual(sub.state, SubscriptionState.PENDING)
        self.hub.confirm_subscription(sub.subscription_id, self.channel.tokens[sub.subscription_id])

        receipt = self.hub.publish_to_topic(first.topic_id, "hello")
        self.assertEqual(receipt.total, 1)
        attempt = receipt.attempts[0]
        self.assertEqual(attempt.subscription_id, sub.subscription_id)
        self.assertEqual(attempt.state, DeliveryState.DELIVERED)

        self.hub.delete_topic(first.topic_id)
        with self.assertRaises(NotFoundError):
            self.hub.list_subscriptions(first.topic_id)
        with self.assertRaises(NotFoundError):
            self.hub.delete_topic(first.topic_id)

    def test_list_subscriptions_shows_states(self):
        topic = self.hub.create_topic("alerts")
        self.hub.subscribe_email(topic.topic_id, "a@x.com")
        self.hub.subscribe_sms(topic.topic_id, "+15551234567")
        self.hub.subscribe_push(topic.topic_id, "arn-like/device/1")
        states = [(s.kind.value, s.state) for s in self.hub.list_subscriptions(topic.topic_id)]
        self.assertEqual(states, [
            ("email", SubscriptionState.PENDING),
            ("sms", SubscriptionState.CONFIRMED),
            ("push", SubscriptionState.PENDING),
        ])

    def test_subscribe_sms_validates_e164(self):
        topic = self.hub.create_topic("alerts")
        with self.assertRaises(InvalidEndpointError):
            self.hub.subscribe_sms(topic.topic_id, "555-1234")

    def test_publish_to_unknown_topic(self):
        with self.assertRaises(NotFoundError):
            self.hub.publish_to_topic("topic_missing", "hello")
        self.assertEqual(self.transport.sent, [])

    def test_send_sms_respects_opt_out(self):
        self.oracle.opt_out("+15550000000")
        receipt = self.hub.send_sms("+15550000000", "promo")
        self.assertEqual(receipt.opted_out, 1)
        self.assertEqual(receipt.attempts[0].state, DeliveryState.OPTED_OUT)
        self.assertEqual(self.transport.sent, [])

        self.oracle.opt_in("+15550000000")
        receipt = self.hub.send_sms("+15550000000", "promo", attributes={"SMSType": "Promotional", "MaxPrice": 0.5})
        self.assertEqual(receipt.delivered, 1)

    def test_publish_direct_email(self):
        receipt = self.hub.publish_direct("email", "b@x.com", "hi", subject="greetings")
        self.assertEqual(receipt.delivered, 1)

    def test_unsubscribed_endpoint_not_delivered(self):
        topic = self.hub.create_topic("alerts")
        sub = self.hub.subscribe_sms(topic.topic_id, "+15551234567")
        self.hub.unsubscribe(sub.subscription_id)
        receipt = self.hub.publish_to_topic(topic.topic_id, "hello")
        self.assertEqual(receipt.total, 0)

    def test_metrics_count_outcomes(self):
        topic = self.hub.create_topic("alerts")
        self.hub.subscribe_sms(topic.topic_id, "+15551234567")
        self.hub.publish_to_topic(topic.topic_id, "hello")
        self.assertEqual(self.hub.metrics.get_counter("publish.calls"), 1)
        self.assertEqual(self.hub.metrics.get_counter("attempts.delivered"), 1)


class TestFromSettings(unittest.TestCase):

    def test_settings_drive_engine(self):
        settings = Settings(pool_size=2, retry_base_ms=50, retry_max_attempts=3, dedup_window=10)
        hub = NotificationPublisher.from_settings(settings, RecordingTransport())
        try:
            policy = hub.engine.retry_policy
            self.assertEqual(policy.base_delay, 0.05)
            self.assertEqual(policy.max_attempts, 3)
        finally:
            hub.close()


if __name__ == '__main__':
    unittest.main()
