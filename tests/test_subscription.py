"""
Unit tests for the subscription table.
Covers confirmation states, endpoint validation, listing and cascade delete.
"""
import unittest

from notifyhub.errors import ConfirmationError, InvalidEndpointError, NotFoundError
from notifyhub.message import EndpointKind
from notifyhub.registry import TopicRegistry
from notifyhub.subscription import SubscriptionState, SubscriptionTable
from stubs import CollectingConfirmationChannel, FailOnceConfirmationChannel


class TestSubscriptionTable(unittest.TestCase):

    def setUp(self):
        self.registry = TopicRegistry()
        self.channel = CollectingConfirmationChannel()
        self.table = SubscriptionTable(self.registry, self.channel)
        self.topic = self.registry.create_topic("alerts")

    def test_email_starts_pending_and_gets_token(self):
        sub = self.table.subscribe(self.topic.topic_id, "email", "a@x.com")
        self.assertEqual(sub.state, SubscriptionState.PENDING)
        self.assertIn(sub.subscription_id, self.channel.tokens)
        listed = list(self.table.list_by_topic(self.topic.topic_id))
        self.assertEqual([s.subscription_id for s in listed], [sub.subscription_id])
        self.assertEqual(listed[0].state, SubscriptionState.PENDING)

    def test_undeliverable_confirmation_leaves_no_subscription(self):
        channel = FailOnceConfirmationChannel()
        table = SubscriptionTable(self.registry, channel)
        with self.assertRaises(ConnectionError):
            table.subscribe(self.topic.topic_id, "email", "a@x.com")
        self.assertEqual(table.subscription_count(), 0)
        self.assertEqual(list(table.list_by_topic(self.topic.topic_id)), [])

        sub = table.subscribe(self.topic.topic_id, "email", "a@x.com")
        confirmed = table.confirm_subscription(sub.subscription_id, channel.tokens[sub.subscription_id])
        self.assertEqual(confirmed.state, SubscriptionState.CONFIRMED)

    def test_sms_starts_confirmed_without_token(self):
        sub = self.table.subscribe(self.topic.topic_id, EndpointKind.SMS, "+15551234567")
        self.assertEqual(sub.state, SubscriptionState.CONFIRMED)
        self.assertNotIn(sub.subscription_id, self.channel.tokens)

    def test_push_requires_confirmation(self):
        sub = self.table.subscribe(self.topic.topic_id, "push", "device-token-123")
        self.assertEqual(sub.state, SubscriptionState.PENDING)

    def test_invalid_endpoints(self):
        cases = [
            ("email", "not-an-email"),
            ("email", "a@b"),
            ("sms", "5551234567"),
            ("sms", "+05551234567"),
            ("sms", "+1234567890123456"),
            ("push", "has space"),
            ("pager", "123"),
        ]
        for kind, address in cases:
            with self.subTest(kind=kind, address=address):
                with self.assertRaises(InvalidEndpointError):
                    self.table.subscribe(self.topic.topic_id, kind, address)
        self.assertEqual(self.table.subscription_count(), 0)

    def test_subscribe_unknown_topic(self):
        with self.assertRaises(NotFoundError):
            self.table.subscribe("topic_missing", "email", "a@x.com")

    def test_confirm_with_token(self):
        sub = self.table.subscribe(self.topic.topic_id, "email", "a@x.com")
        token = self.channel.tokens[sub.subscription_id]
        confirmed = self.table.confirm_subscription(sub.subscription_id, token)
        self.assertEqual(confirmed.state, SubscriptionState.CONFIRMED)
        # The earlier snapshot is not mutated.
        self.assertEqual(sub.state, SubscriptionState.PENDING)
        again = self.table.confirm_subscription(sub.subscription_id, token)
        self.assertEqual(again.state, SubscriptionState.CONFIRMED)

    def test_confirm_with_wrong_token(self):
        sub = self.table.subscribe(self.topic.topic_id, "email", "a@x.com")
        with self.assertRaises(ConfirmationError) as ctx:
            self.table.confirm_subscription(sub.subscription_id, "wrong")
        self.assertEqual(ctx.exception.identifier, sub.subscription_id)
        self.assertEqual(
            self.table.get_subscription(sub.subscription_id).state, SubscriptionState.PENDING
        )

    def test_confirm_unknown_subscription(self):
        with self.assertRaises(NotFoundError):
            self.table.confirm_subscription("missing", "token")

    def test_reject_then_confirm_fails(self):
        sub = self.table.subscribe(self.topic.topic_id, "email", "a@x.com")
        token = self.channel.tokens[sub.subscription_id]
        rejected = self.table.reject_subscription(sub.subscription_id, token)
        self.assertEqual(rejected.state, SubscriptionState.REJECTED)
        with self.assertRaises(ConfirmationError):
            self.table.confirm_subscription(sub.subscription_id, token)

    def test_resubscribe_same_endpoint_returns_existing(self):
        first = self.table.subscribe(self.topic.topic_id, "email", "a@x.com")
        second = self.table.subscribe(self.topic.topic_id, "email", " a@x.com ")
        self.assertEqual(first.subscription_id, second.subscription_id)
        self.assertEqual(self.table.subscription_count(), 1)

    def test_list_by_topic_ordered_and_restartable(self):
        addresses = ["+15550000001", "+15550000002", "+15550000003"]
        for address in addresses:
            self.table.subscribe(self.topic.topic_id, "sms", address)
        view = self.table.list_by_topic(self.topic.topic_id)
        self.assertEqual([s.address for s in view], addresses)
        self.assertEqual([s.address for s in view], addresses)

    def test_list_by_topic_sees_later_changes_on_restart(self):
        view = self.table.list_by_topic(self.topic.topic_id)
        self.assertEqual(list(view), [])
        self.table.subscribe(self.topic.topic_id, "sms", "+15550000001")
        self.assertEqual(len(list(view)), 1)

    def test_unsubscribe_is_idempotent(self):
        sub = self.table.subscribe(self.topic.topic_id, "sms", "+15550000001")
        self.table.unsubscribe(sub.subscription_id)
        self.table.unsubscribe(sub.subscription_id)
        self.table.unsubscribe("never-existed")
        self.assertEqual(list(self.table.list_by_topic(self.topic.topic_id)), [])

    def test_confirmed_for_topic_excludes_pending(self):
        self.table.subscribe(self.topic.topic_id, "email", "a@x.com")
        sms = self.table.subscribe(self.topic.topic_id, "sms", "+15550000001")
        confirmed = self.table.confirmed_for_topic(self.topic.topic_id)
        self.assertEqual([s.subscription_id for s in confirmed], [sms.subscription_id])

    def test_delete_topic_cascades(self):
        sub = self.table.subscribe(self.topic.topic_id, "sms", "+15550000001")
        self.registry.delete_topic(self.topic.topic_id)
        with self.assertRaises(NotFoundError):
            self.table.list_by_topic(self.topic.topic_id)
        with self.assertRaises(NotFoundError):
            self.table.get_subscription(sub.subscription_id)
        self.assertEqual(self.table.subscription_count(), 0)

    def test_view_fails_after_topic_deleted(self):
        view = self.table.list_by_topic(self.topic.topic_id)
        self.registry.delete_topic(self.topic.topic_id)
        with self.assertRaises(NotFoundError):
            list(view)


if __name__ == '__main__':
    unittest.main()
