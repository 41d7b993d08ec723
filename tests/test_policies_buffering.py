import asyncio

import pytest

from openclaw.channels.policies import ModeratePolicyHandler, QueuePolicyHandler


# ---------------------------------------------------------------------------
# moderate
# ---------------------------------------------------------------------------

@pytest.fixture
def moderate(clock):
    handler = ModeratePolicyHandler(clock=clock)
    yield handler
    handler.dispose()


async def test_inbound_passes_moderation(moderate, policy_ctx):
    assert (await moderate.process(policy_ctx("moderate", {"moderators": ["mod"]}))).allow


async def test_outbound_held_until_approved(moderate, policy_ctx):
    notified, actions = [], []

    async def notify(pending, moderators):
        notified.append((pending.id, moderators))

    async def on_action(pending, approved):
        actions.append((pending.id, approved, pending.reviewed_by))

    moderate.set_notify_callback(notify)
    moderate.set_action_callback(on_action)

    ctx = policy_ctx("moderate", {"moderators": ["mod"]}, sender=None)
    result = await moderate.process(ctx)
    assert not result.allow
    assert result.metadata["status"] == "pending"
    assert notified == [("msg-1", ["mod"])]
    assert [p.id for p in moderate.get_pending_messages(ctx.binding.id)] == ["msg-1"]

    assert await moderate.approve(ctx.binding.id, "msg-1", "mod")
    assert actions == [("msg-1", True, "mod")]
    assert moderate.get_pending_messages(ctx.binding.id) == []
    assert not await moderate.reject(ctx.binding.id, "msg-1", "mod")


async def test_auto_approve_rules(moderate, policy_ctx):
    config = {
        "moderators": ["mod"],
        "auto_approve_rules": {"allowed_patterns": [r"^OK"], "max_length": 20},
        "sensitive_words": ["secret"],
    }
    assert (await moderate.process(policy_ctx("moderate", config, content="OK done", sender=None))).allow
    assert not (await moderate.process(policy_ctx("moderate", config, content="OK secret", sender=None))).allow
    assert not (await moderate.process(policy_ctx("moderate", config, content="not ok", sender=None))).allow


async def test_timeout_applies_default_action(moderate, policy_ctx):
    decided = asyncio.Event()
    outcomes = []

    async def on_action(pending, approved):
        outcomes.append((approved, pending.reviewed_by, pending.review_comment))
        decided.set()

    moderate.set_action_callback(on_action)
    config = {"moderators": ["mod"], "timeout": 0.01, "default_action": "approve"}
    await moderate.process(policy_ctx("moderate", config, sender=None))

    await asyncio.wait_for(decided.wait(), timeout=1)
    assert outcomes == [(True, "system", "Auto-approved due to timeout")]


async def test_early_review_cancels_timer(moderate, policy_ctx):
    outcomes = []

    async def on_action(pending, approved):
        outcomes.append(approved)

    moderate.set_action_callback(on_action)
    ctx = policy_ctx("moderate", {"moderators": ["mod"], "timeout": 0.05}, sender=None)
    await moderate.process(ctx)
    await moderate.reject(ctx.binding.id, "msg-1", "mod", "nope")
    await asyncio.sleep(0.1)
    assert outcomes == [False]


async def test_moderate_validation(moderate):
    assert (await moderate.validate({"moderators": ["m"], "timeout": 30})).valid
    result = await moderate.validate({"moderators": [], "timeout": -1, "default_action": "maybe"})
    assert set(result.errors) == {
        "moderators cannot be empty",
        "timeout must be a positive number",
        "default_action must be one of: approve, reject",
    }


# ---------------------------------------------------------------------------
# queue
# ---------------------------------------------------------------------------

QUEUE_CONFIG = {"max_queue_size": 2, "batch_interval": 60, "batch_size": 10, "overflow_action": "reject"}


@pytest.fixture
def queue(clock):
    handler = QueuePolicyHandler(clock=clock)
    yield handler
    handler.dispose()


async def test_queue_buffers_inbound(queue, policy_ctx, clock):
    ctx = policy_ctx("queue", QUEUE_CONFIG)
    result = await queue.process(ctx)
    assert not result.allow
    assert result.reason == "Message queued for batch processing"

    clock.advance(1500)
    assert queue.get_queue_status(ctx.binding.id) == {"size": 1, "oldest_message_age": 1500}
    assert (await queue.process(policy_ctx("queue", QUEUE_CONFIG, sender=None))).allow


@pytest.mark.parametrize("action,size,reason", [
    ("reject", 2, "Queue is full - message rejected"),
    ("drop-newest", 2, "Queue is full - newest message dropped"),
    ("drop-oldest", 2, "Message queued for batch processing"),
])
async def test_queue_overflow(queue, policy_ctx, action, size, reason):
    config = {**QUEUE_CONFIG, "overflow_action": action}
    for i in range(2):
        await queue.process(policy_ctx("queue", config, content=f"m{i}"))
    result = await queue.process(policy_ctx("queue", config, content="m2"))
    assert result.reason == reason
    assert queue.get_queue_status("telegram-bot-1")["size"] == size


async def test_drop_oldest_keeps_newest(queue, policy_ctx):
    config = {**QUEUE_CONFIG, "overflow_action": "drop-oldest"}
    for i in range(3):
        await queue.process(policy_ctx("queue", config, content=f"m{i}"))

    batches = []

    async def collect(batch):
        batches.append([q.message.content for q in batch])

    queue.set_process_callback(collect)
    assert await queue.process_batch("telegram-bot-1", 10) == 2
    assert batches == [["m1", "m2"]]


async def test_failed_batch_is_requeued(queue, policy_ctx):
    await queue.process(policy_ctx("queue", QUEUE_CONFIG))

    async def fail(batch):
        raise RuntimeError("agent down")

    queue.set_process_callback(fail)
    assert await queue.process_batch("telegram-bot-1", 10) == 0
    assert queue.get_queue_status("telegram-bot-1")["size"] == 1


async def test_worker_drains_on_interval(queue, policy_ctx):
    got = asyncio.Event()

    async def collect(batch):
        got.set()

    queue.set_process_callback(collect)
    await queue.process(policy_ctx("queue", {**QUEUE_CONFIG, "batch_interval": 0.01}))
    await asyncio.wait_for(got.wait(), timeout=1)
    assert queue.get_queue_status("telegram-bot-1")["size"] == 0


async def test_queue_validation(queue):
    assert (await queue.validate(QUEUE_CONFIG)).valid
    result = await queue.validate({"max_queue_size": 0, "batch_interval": 1, "batch_size": 1})
    assert "max_queue_size must be a positive number" in result.errors
    assert any(e.startswith("overflow_action must be one of") for e in result.errors)
