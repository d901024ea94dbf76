from datetime import datetime

from devhub.core.errors import Forbidden, InvalidArgument, NotFound
from devhub.modules.messaging.models import Group, Message
from devhub.modules.messaging.service import (
    create_group,
    get_messages,
    list_chats,
    mark_read,
    send_message,
)

from support import ApiTestCase, FailingEmitter, RecordingEmitter, StoreTestCase


class ChatAggregationTestCase(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.alice = self.make_user("Alice", user_id="u1")
        self.bob = self.make_user("Bob", user_id="u2")
        self.carol = self.make_user("Carol", user_id="u3")

    def test_one_thread_per_counterpart_with_unread_counts(self):
        with self.Session() as db:
            send_message(db, "u2", "hi alice", recipient_id="u1")
            send_message(db, "u2", "are you there?", recipient_id="u1")
            send_message(db, "u1", "yes", recipient_id="u2")
            send_message(db, "u3", "hello from carol", recipient_id="u1")

            threads = list_chats(db, "u1")
            self.assertEqual([t.id for t in threads], ["u3", "u2"])

            carol, bob = threads
            self.assertFalse(bob.is_group)
            self.assertEqual(bob.user.name, "Bob")
            self.assertEqual(bob.last_message.content, "yes")
            self.assertEqual(bob.unread_count, 2)
            self.assertEqual(carol.unread_count, 1)
            self.assertEqual(bob.updated_at, bob.last_message.created_at)

            # bob's side: his own messages never count as unread
            bob_view = list_chats(db, "u2")
            self.assertEqual(len(bob_view), 1)
            self.assertEqual(bob_view[0].unread_count, 1)

    def test_groups_are_merged_by_recency(self):
        with self.Session() as db:
            send_message(db, "u2", "direct", recipient_id="u1")
            group = create_group(db, "u3", "Study group", ["u1", "u2"])
            send_message(db, "u2", "group hello", group_id=group.id, is_group=True)
            send_message(db, "u3", "group hello 2", group_id=group.id, is_group=True)

            threads = list_chats(db, "u1")
            self.assertEqual([(t.id, t.is_group) for t in threads], [(str(group.id), True), ("u2", False)])

            group_thread = threads[0]
            self.assertEqual(group_thread.group.name, "Study group")
            self.assertEqual(group_thread.unread_count, 2)
            self.assertEqual(group_thread.last_message.content, "group hello 2")

            # the sender's own group messages are not unread for them
            carol_threads = list_chats(db, "u3")
            self.assertEqual(len(carol_threads), 1)
            self.assertEqual(carol_threads[0].unread_count, 1)

    def test_group_without_messages_is_listed(self):
        with self.Session() as db:
            group = create_group(db, "u1", "Quiet", ["u2"])
            threads = list_chats(db, "u2")
            self.assertEqual(len(threads), 1)
            self.assertEqual(threads[0].id, str(group.id))
            self.assertIsNone(threads[0].last_message)
            self.assertEqual(threads[0].unread_count, 0)

    def test_equal_timestamps_list_groups_first_then_id_descending(self):
        with self.Session() as db:
            send_message(db, "u2", "from bob", recipient_id="u1")
            send_message(db, "u3", "from carol", recipient_id="u1")
            group = create_group(db, "u1", "Same second", ["u2"])
            send_message(db, "u2", "group note", group_id=group.id, is_group=True)

            pinned = datetime(2024, 1, 1, 12, 0, 0)
            db.query(Message).update({Message.created_at: pinned}, synchronize_session=False)
            db.query(Group).update({Group.updated_at: pinned}, synchronize_session=False)
            db.commit()
            db.expire_all()

            threads = list_chats(db, "u1")
            self.assertEqual([t.id for t in threads], [str(group.id), "u3", "u2"])

    def test_counterpart_without_user_row_is_skipped(self):
        with self.Session() as db:
            send_message(db, "u2", "real", recipient_id="u1")
            # foreign keys are not enforced by the in-memory store
            db.add(Message(sender_id="ghost", recipient_id="u1", content="boo"))
            db.commit()

            threads = list_chats(db, "u1")
            self.assertEqual([t.id for t in threads], ["u2"])
            self.assertEqual(threads[0].last_message.content, "real")

    def test_get_messages_marks_only_incoming_as_read(self):
        with self.Session() as db:
            send_message(db, "u2", "one", recipient_id="u1")
            send_message(db, "u1", "two", recipient_id="u2")
            send_message(db, "u2", "three", recipient_id="u1")

            page = get_messages(db, "u1", "u2", is_group=False)
            self.assertEqual([m.content for m in page], ["one", "two", "three"])

            by_content = {m.content: m for m in db.query(Message).all()}
            self.assertTrue(by_content["one"].read)
            self.assertTrue(by_content["three"].read)
            # sent by the viewer, still unread on bob's side
            self.assertFalse(by_content["two"].read)

            self.assertEqual(list_chats(db, "u1")[0].unread_count, 0)
            self.assertEqual(list_chats(db, "u2")[0].unread_count, 1)

    def test_get_messages_pages_are_chronological_windows(self):
        with self.Session() as db:
            for i in range(5):
                send_message(db, "u2", f"m{i}", recipient_id="u1")

            first = get_messages(db, "u1", "u2", is_group=False, page=1, limit=2)
            second = get_messages(db, "u1", "u2", is_group=False, page=2, limit=2)
            third = get_messages(db, "u1", "u2", is_group=False, page=3, limit=2)
            self.assertEqual([m.content for m in first], ["m3", "m4"])
            self.assertEqual([m.content for m in second], ["m1", "m2"])
            self.assertEqual([m.content for m in third], ["m0"])

    def test_get_messages_clamps_page_and_limit(self):
        with self.Session() as db:
            for i in range(3):
                send_message(db, "u2", f"m{i}", recipient_id="u1")

            self.assertEqual(
                [m.content for m in get_messages(db, "u1", "u2", is_group=False, page=0, limit=2)],
                ["m1", "m2"],
            )
            self.assertEqual(len(get_messages(db, "u1", "u2", is_group=False, page=1, limit=0)), 3)

    def test_get_group_messages_marks_other_members_messages(self):
        with self.Session() as db:
            group = create_group(db, "u1", "Team", ["u2", "u3"])
            send_message(db, "u1", "from alice", group_id=group.id, is_group=True)
            send_message(db, "u2", "from bob", group_id=group.id, is_group=True)

            page = get_messages(db, "u1", str(group.id), is_group=True)
            self.assertEqual([m.content for m in page], ["from alice", "from bob"])

            by_content = {m.content: m for m in db.query(Message).all()}
            self.assertTrue(by_content["from bob"].read)
            self.assertFalse(by_content["from alice"].read)

    def test_get_group_messages_requires_membership(self):
        outsider = self.make_user("Oscar", user_id="u9")
        with self.Session() as db:
            group = create_group(db, "u1", "Team", ["u2"])
            with self.assertRaises(Forbidden):
                get_messages(db, outsider, str(group.id), is_group=True)
            with self.assertRaises(NotFound):
                get_messages(db, "u1", "999", is_group=True)
            with self.assertRaises(InvalidArgument):
                get_messages(db, "u1", "not-a-number", is_group=True)

    def test_send_message_validation(self):
        with self.Session() as db:
            with self.assertRaises(InvalidArgument):
                send_message(db, "u1", "   ", recipient_id="u2")
            with self.assertRaises(InvalidArgument):
                send_message(db, "u1", "hi")
            with self.assertRaises(InvalidArgument):
                send_message(db, "u1", "hi", recipient_id="u1")
            with self.assertRaises(InvalidArgument):
                send_message(db, "u1", "hi", is_group=True)
            with self.assertRaises(NotFound):
                send_message(db, "u1", "hi", recipient_id="ghost")
            with self.assertRaises(NotFound):
                send_message(db, "u1", "hi", group_id=42, is_group=True)

            group = create_group(db, "u2", "Closed", ["u3"])
            with self.assertRaises(Forbidden):
                send_message(db, "u1", "let me in", group_id=group.id, is_group=True)

    def test_send_message_trims_and_targets_one_side(self):
        with self.Session() as db:
            msg = send_message(db, "u1", "  padded  ", recipient_id="u2", message_type="image")
            self.assertEqual(msg.content, "padded")
            self.assertEqual(msg.message_type, "image")
            self.assertFalse(msg.read)
            self.assertIsNone(msg.group_id)

            group = create_group(db, "u1", "Team", ["u2"])
            gmsg = send_message(db, "u1", "hey team", recipient_id="u3", group_id=group.id, is_group=True)
            self.assertIsNone(gmsg.recipient_id)
            self.assertEqual(gmsg.group_id, group.id)
            db.refresh(group)
            self.assertEqual(group.last_message_id, gmsg.id)

    def test_mark_read_is_idempotent_by_not_found(self):
        with self.Session() as db:
            msg = send_message(db, "u2", "read me", recipient_id="u1")

            with self.assertRaises(NotFound):
                mark_read(db, msg.id, "u2")

            updated = mark_read(db, msg.id, "u1")
            self.assertTrue(updated.read)

            with self.assertRaises(NotFound):
                mark_read(db, msg.id, "u1")

    def test_notifications_go_to_recipients_only(self):
        emitter = RecordingEmitter()
        with self.Session() as db:
            send_message(db, "u1", "direct", recipient_id="u2", emitter=emitter)
            group = create_group(db, "u1", "Team", ["u2", "u3"])
            send_message(db, "u2", "group", group_id=group.id, is_group=True, emitter=emitter)

        targets = [(user_id, event) for user_id, event, _ in emitter.events]
        self.assertEqual(
            targets,
            [("u2", "newMessage"), ("u1", "newMessage"), ("u3", "newMessage")],
        )
        payload = emitter.events[0][2]
        self.assertEqual(payload["content"], "direct")
        self.assertEqual(payload["sender"]["id"], "u1")

    def test_emitter_failure_does_not_fail_send(self):
        with self.Session() as db:
            msg = send_message(db, "u1", "still saved", recipient_id="u2", emitter=FailingEmitter())
            self.assertIsNotNone(msg.id)
            self.assertEqual(db.query(Message).count(), 1)


class MessagingRoutesTestCase(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.alice = self.make_user("Alice", role="student")
        self.bob = self.make_user("Bob", role="developer")

    def test_send_then_fetch_round_trip(self):
        resp = self.client.post(
            "/api/messages/send",
            json={"recipient": self.bob, "content": "Hello Bob", "isGroup": False},
            headers=self.auth(self.alice),
        )
        self.assertEqual(resp.status_code, 200)
        sent = resp.json()["data"]
        self.assertEqual(sent["content"], "Hello Bob")
        self.assertEqual(sent["sender"]["id"], self.alice)
        self.assertEqual(sent["recipient"]["id"], self.bob)
        self.assertFalse(sent["read"])
        self.assertEqual(sent["messageType"], "text")

        self.assertEqual(len(self.emitter.events), 1)
        self.assertEqual(self.emitter.events[0][0], self.bob)

        resp = self.client.get("/api/messages/chats", headers=self.auth(self.bob))
        chats = resp.json()["data"]
        self.assertEqual(len(chats), 1)
        self.assertEqual(chats[0]["id"], self.alice)
        self.assertEqual(chats[0]["name"], "Alice")
        self.assertEqual(chats[0]["role"], "student")
        self.assertFalse(chats[0]["isGroup"])
        self.assertEqual(chats[0]["unreadCount"], 1)

        resp = self.client.get(
            f"/api/messages/messages/{self.alice}",
            params={"isGroup": "false", "page": 1, "limit": 50},
            headers=self.auth(self.bob),
        )
        self.assertEqual(resp.status_code, 200)
        history = resp.json()["data"]
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0]["content"], "Hello Bob")
        self.assertEqual(history[0]["sender"]["id"], self.alice)
        self.assertTrue(history[0]["read"])

        resp = self.client.get("/api/messages/chats", headers=self.auth(self.bob))
        self.assertEqual(resp.json()["data"][0]["unreadCount"], 0)

    def test_blank_message_is_400(self):
        resp = self.client.post(
            "/api/messages/send",
            json={"recipient": self.bob, "content": "   "},
            headers=self.auth(self.alice),
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"success": False, "message": "Message content is required"})

    def test_mark_read_route(self):
        resp = self.client.post(
            "/api/messages/send",
            json={"recipient": self.bob, "content": "ping"},
            headers=self.auth(self.alice),
        )
        message_id = resp.json()["data"]["id"]

        resp = self.client.put(f"/api/messages/{message_id}/read", headers=self.auth(self.bob))
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["data"]["read"])

        resp = self.client.put(f"/api/messages/{message_id}/read", headers=self.auth(self.bob))
        self.assertEqual(resp.status_code, 404)

    def test_failing_push_channel_still_returns_message(self):
        from devhub.main import app
        from devhub.modules.notifications.hub import get_emitter

        app.dependency_overrides[get_emitter] = lambda: FailingEmitter()
        resp = self.client.post(
            "/api/messages/send",
            json={"recipient": self.bob, "content": "best effort"},
            headers=self.auth(self.alice),
        )
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["success"])

    def test_history_accepts_out_of_range_paging(self):
        for i in range(3):
            self.client.post(
                "/api/messages/send",
                json={"recipient": self.bob, "content": f"note {i}"},
                headers=self.auth(self.alice),
            )

        resp = self.client.get(
            f"/api/messages/messages/{self.alice}",
            params={"limit": 500},
            headers=self.auth(self.bob),
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([m["content"] for m in resp.json()["data"]], ["note 0", "note 1", "note 2"])

        resp = self.client.get(
            f"/api/messages/messages/{self.alice}",
            params={"page": 0, "limit": 2},
            headers=self.auth(self.bob),
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([m["content"] for m in resp.json()["data"]], ["note 1", "note 2"])
