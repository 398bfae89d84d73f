from datetime import timedelta

from petcare.services.fcm_service import DeliveryError
from petcare.services.reminder_scheduler_service import ReminderSchedulerService
from petcare.utils.dates import utc_now

from tests.conftest import NOW, reminder_path

DUE = NOW - timedelta(minutes=1)


def add_reminder(store, path=None, **data):
    doc = {
        'title': 'Rabies booster',
        'type': 'vaccine',
        'petName': 'Mavi',
        'dueDate': DUE,
        'repeatType': 'none',
        'active': True,
    }
    doc.update(data)
    return store.add(path or reminder_path(), **doc)


class TestNoDevices:

    def test_one_shot_without_devices_is_closed(self, scheduler, reminder_store, push_service):
        path = add_reminder(reminder_store)

        summary = scheduler.check_and_send_reminders(now=NOW)

        doc = reminder_store.docs[path]
        assert doc['active'] is False
        assert doc['lastNotifiedAt'] == NOW
        assert doc['lastSendStatus'] == 'no_devices'
        assert doc['dueDate'] == DUE
        assert push_service.sent == []
        assert (summary.processed, summary.sent, summary.skipped, summary.failed) == (1, 0, 1, 0)

    def test_weekly_without_devices_advances(self, scheduler, reminder_store):
        path = add_reminder(reminder_store, repeatType='weekly')

        scheduler.check_and_send_reminders(now=NOW)

        doc = reminder_store.docs[path]
        assert doc['active'] is True
        assert doc['dueDate'] == DUE + timedelta(days=7)


class TestDelivery:

    def test_successful_send_builds_payload_and_advances(self, scheduler, reminder_store, token_store,
                                                           push_service):
        path = add_reminder(reminder_store, repeatType='monthly')
        token_store.add('user-1', 'tok-a')

        summary = scheduler.check_and_send_reminders(now=NOW)

        assert summary.sent == 1
        tokens, notification = push_service.sent[0]
        assert tokens == ['tok-a']
        assert notification.title == 'PetCare • Vaccine'
        assert notification.body == 'Mavi: Rabies booster (10.03 11:59)'
        assert notification.data == {
            'type': 'reminder_due',
            'reminderId': 'rem-1',
            'petId': 'pet-1',
            'reminderType': 'vaccine',
            'screen': 'petDetail',
        }

        doc = reminder_store.docs[path]
        assert doc['lastNotifiedAt'] == NOW
        assert doc['dueDate'] == DUE.replace(month=4)
        assert doc['failedAttempts'] == 0
        assert doc['lastSendStatus'] == 'sent'

    def test_body_without_pet_name_or_title(self, scheduler, reminder_store, token_store, push_service):
        add_reminder(reminder_store, petName=None, title='', type='medication')
        token_store.add('user-1', 'tok-a')

        scheduler.check_and_send_reminders(now=NOW)

        notification = push_service.sent[0][1]
        assert notification.title == 'PetCare • Medication'
        assert notification.body == 'Reminder (10.03 11:59)'

    def test_partial_failure_counts_as_sent_and_prunes_dead_token(self, scheduler, reminder_store,
                                                                   token_store, push_service):
        path = add_reminder(reminder_store)
        token_store.add('user-1', 'tok-live')
        dead_id = token_store.add('user-1', 'tok-dead')
        push_service.errors['tok-dead'] = DeliveryError.NOT_REGISTERED

        summary = scheduler.check_and_send_reminders(now=NOW)

        assert summary.sent == 1
        assert token_store.deleted == [('user-1', dead_id)]
        assert reminder_store.docs[path]['active'] is False

    def test_single_unregistered_token_is_pruned_and_reminder_stays_due(self, scheduler, reminder_store,
                                                                        token_store, push_service):
        path = add_reminder(reminder_store, repeatType='weekly')
        token_id = token_store.add('user-1', 'tok-dead')
        push_service.errors['tok-dead'] = DeliveryError.NOT_REGISTERED

        summary = scheduler.check_and_send_reminders(now=NOW)

        doc = reminder_store.docs[path]
        assert summary.failed == 1
        assert token_store.deleted == [('user-1', token_id)]
        assert doc['dueDate'] == DUE
        assert doc['active'] is True
        assert 'lastNotifiedAt' not in doc
        assert doc['failedAttempts'] == 1
        assert doc['lastSendStatus'] == 'failed'

    def test_transient_errors_keep_the_token(self, scheduler, reminder_store, token_store, push_service):
        add_reminder(reminder_store)
        token_store.add('user-1', 'tok-busy')
        push_service.errors['tok-busy'] = DeliveryError.RATE_LIMITED

        summary = scheduler.check_and_send_reminders(now=NOW)

        assert summary.failed == 1
        assert token_store.deleted == []
        assert len(token_store.list_tokens('user-1')) == 1

    def test_failed_reminder_is_retried_on_next_scan(self, scheduler, reminder_store, token_store,
                                                     push_service):
        path = add_reminder(reminder_store)
        token_store.add('user-1', 'tok-a')
        push_service.errors['tok-a'] = DeliveryError.UNAVAILABLE

        scheduler.check_and_send_reminders(now=NOW)
        push_service.errors.clear()
        summary = scheduler.check_and_send_reminders(now=NOW + timedelta(minutes=5))

        assert summary.sent == 1
        assert len(push_service.sent) == 2
        assert reminder_store.docs[path]['failedAttempts'] == 0

    def test_several_dead_tokens_are_deleted_independently(self, scheduler, reminder_store, token_store,
                                                           push_service):
        add_reminder(reminder_store)
        ids = [token_store.add('user-1', f"tok-{n}") for n in range(4)]
        for n in range(4):
            push_service.errors[f"tok-{n}"] = DeliveryError.INVALID_TOKEN
        token_store.undeletable.add(ids[0])

        summary = scheduler.check_and_send_reminders(now=NOW)

        assert summary.failed == 1
        assert sorted(token_id for _, token_id in token_store.deleted) == sorted(ids[1:])
        assert [t.id for t in token_store.list_tokens('user-1')] == [ids[0]]


class TestRetryLimit:

    def test_gives_up_after_max_failed_attempts(self, scheduler, reminder_store, token_store, push_service):
        path = add_reminder(reminder_store, repeatType='weekly', failedAttempts=11)
        token_store.add('user-1', 'tok-a')
        push_service.errors['tok-a'] = DeliveryError.UNAVAILABLE

        summary = scheduler.check_and_send_reminders(now=NOW)

        doc = reminder_store.docs[path]
        assert summary.failed == 1
        assert doc['lastSendStatus'] == 'gave_up'
        assert doc['dueDate'] == DUE + timedelta(days=7)
        assert doc['lastNotifiedAt'] == NOW
        assert doc['failedAttempts'] == 0

    def test_zero_limit_retries_forever(self, reminder_store, token_store, notification_service, push_service):
        scheduler = ReminderSchedulerService(reminder_store, token_store, notification_service,
                                             max_failed_attempts=0)
        path = add_reminder(reminder_store, failedAttempts=500)
        token_store.add('user-1', 'tok-a')
        push_service.errors['tok-a'] = DeliveryError.UNAVAILABLE

        scheduler.check_and_send_reminders(now=NOW)

        doc = reminder_store.docs[path]
        assert doc['active'] is True
        assert doc['failedAttempts'] == 501


class TestSkips:

    def test_stale_one_shot_is_left_untouched(self, scheduler, reminder_store, token_store, push_service):
        path = add_reminder(reminder_store, dueDate=NOW - timedelta(hours=2))
        token_store.add('user-1', 'tok-a')

        summary = scheduler.check_and_send_reminders(now=NOW)

        assert summary.skipped == 1
        assert push_service.sent == []
        assert reminder_store.patches == []
        assert reminder_store.docs[path]['active'] is True

    def test_notified_repeating_reminder_rolls_forward_without_push(self, scheduler, reminder_store,
                                                                    token_store, push_service):
        old_due = NOW - timedelta(days=15)
        path = add_reminder(reminder_store, repeatType='weekly', dueDate=old_due, lastNotifiedAt=old_due)
        token_store.add('user-1', 'tok-a')

        summary = scheduler.check_and_send_reminders(now=NOW)

        doc = reminder_store.docs[path]
        assert summary.skipped == 1
        assert push_service.sent == []
        assert doc['dueDate'] == old_due + timedelta(days=21)
        assert doc['lastNotifiedAt'] == old_due

    def test_unexpected_path_is_skipped(self, scheduler, reminder_store, token_store, push_service):
        add_reminder(reminder_store, path='legacy/reminders/rem-9')
        token_store.add('user-1', 'tok-a')

        summary = scheduler.check_and_send_reminders(now=NOW)

        assert summary.skipped == 1
        assert push_service.sent == []

    def test_unknown_repeat_type_is_sent_once_and_closed(self, scheduler, reminder_store, token_store,
                                                         push_service):
        path = add_reminder(reminder_store, repeatType='fortnightly')
        token_store.add('user-1', 'tok-a')

        first = scheduler.check_and_send_reminders(now=NOW)
        second = scheduler.check_and_send_reminders(now=NOW + timedelta(minutes=5))

        doc = reminder_store.docs[path]
        assert first.sent == 1
        assert second.processed == 0
        assert len(push_service.sent) == 1
        assert doc['active'] is False
        assert doc['lastNotifiedAt'] == NOW


class TestAtMostOncePerDueDate:

    def test_repeating_reminder_still_past_due_is_not_sent_twice(self, scheduler, reminder_store,
                                                                 token_store, push_service):
        old_due = NOW - timedelta(days=8)
        path = add_reminder(reminder_store, repeatType='weekly', dueDate=old_due)
        token_store.add('user-1', 'tok-a')

        first = scheduler.check_and_send_reminders(now=NOW)
        assert reminder_store.docs[path]['dueDate'] == old_due + timedelta(days=7)

        second = scheduler.check_and_send_reminders(now=NOW + timedelta(minutes=1))

        doc = reminder_store.docs[path]
        assert first.sent == 1
        assert (second.processed, second.sent, second.skipped) == (1, 0, 1)
        assert len(push_service.sent) == 1
        assert doc['dueDate'] == old_due + timedelta(days=14)
        assert doc['lastNotifiedAt'] == NOW

    def test_custom_interval_past_date_range_is_sent_once_and_closed(self, scheduler, reminder_store,
                                                                     token_store, push_service):
        path = add_reminder(reminder_store, repeatType='customDays', customDaysInterval=3000000)
        token_store.add('user-1', 'tok-a')

        first = scheduler.check_and_send_reminders(now=NOW)
        second = scheduler.check_and_send_reminders(now=NOW + timedelta(minutes=5))

        doc = reminder_store.docs[path]
        assert (first.sent, first.failed) == (1, 0)
        assert second.processed == 0
        assert len(push_service.sent) == 1
        assert doc['active'] is False
        assert doc['lastNotifiedAt'] == NOW
        assert doc['lastSendStatus'] == 'sent'


class TestIsolation:

    def test_one_broken_reminder_does_not_stop_the_batch(self, scheduler, reminder_store, token_store,
                                                         push_service):
        add_reminder(reminder_store, path=reminder_path(owner_id='user-broken'), dueDate=DUE - timedelta(minutes=1))
        ok_path = add_reminder(reminder_store, path=reminder_path(reminder_id='rem-2'))
        token_store.broken_owners.add('user-broken')
        token_store.add('user-1', 'tok-a')

        summary = scheduler.check_and_send_reminders(now=NOW)

        assert (summary.processed, summary.sent, summary.failed) == (2, 1, 1)
        assert reminder_store.docs[ok_path]['lastSendStatus'] == 'sent'

    def test_batch_limit_takes_oldest_first(self, reminder_store, token_store, notification_service,
                                            push_service):
        scheduler = ReminderSchedulerService(reminder_store, token_store, notification_service, batch_limit=1)
        add_reminder(reminder_store, path=reminder_path(reminder_id='newer'), dueDate=DUE)
        add_reminder(reminder_store, path=reminder_path(reminder_id='older'), dueDate=DUE - timedelta(minutes=3))
        token_store.add('user-1', 'tok-a')

        summary = scheduler.check_and_send_reminders(now=NOW)

        assert summary.processed == 1
        assert push_service.sent[0][1].data['reminderId'] == 'older'


class TestStatus:

    def test_trigger_and_status_report_last_scan(self, scheduler, reminder_store):
        add_reminder(reminder_store, dueDate=utc_now() + timedelta(days=1))

        result = scheduler.trigger_immediate_check()
        status = scheduler.get_scheduler_status()

        assert result['success'] is True
        assert result['summary']['processed'] == 0
        assert status['scheduler_running'] is False
        assert status['last_summary']['processed'] == 0
        assert status['due_reminders'] == 0
