"""Example: topic fan-out, email confirmation and a direct sms with an opt-out list."""

import logging

from notifyhub import (
    LoggingTransport,
    NotFoundError,
    NotificationPublisher,
    Settings,
    StaticOptOutOracle,
)
from notifyhub.subscription import SubscriptionState
from notifyhub.transport import ConfirmationChannel

logging.basicConfig(level=logging.INFO)


class InboxConfirmationChannel(ConfirmationChannel):
    """Keeps tokens so the example can confirm on the subscriber's behalf."""

    def __init__(self) -> None:
        self.tokens = {}

    def send_confirmation(self, subscription, token: str) -> None:
        self.tokens[subscription.subscription_id] = token


def main() -> None:
    settings = Settings.from_env()
    inbox = InboxConfirmationChannel()
    with NotificationPublisher.from_settings(
        settings,
        LoggingTransport(settings.region, settings.account),
        opt_out_oracle=StaticOptOutOracle(["+15550000000"]),
        confirmation_channel=inbox,
    ) as hub:
        topic = hub.create_topic("alerts")
        assert hub.create_topic("alerts").topic_id == topic.topic_id

        email = hub.subscribe_email(topic.topic_id, "a@x.com")
        assert email.state is SubscriptionState.PENDING
        hub.confirm_subscription(email.subscription_id, inbox.tokens[email.subscription_id])
        hub.subscribe_sms(topic.topic_id, "+15551234567")

        receipt = hub.publish_to_topic(topic.topic_id, "hello", attributes={"severity": 3})
        print(receipt.to_dict())

        print(hub.send_sms("+15550000000", "you will not see this").to_dict())

        hub.delete_topic(topic.topic_id)
        try:
            hub.list_subscriptions(topic.topic_id)
        except NotFoundError as e:
            print(e)


if __name__ == "__main__":
    main()
