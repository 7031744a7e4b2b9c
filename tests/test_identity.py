"""Identity resolution for inbound insight payloads."""

from datetime import datetime, timedelta

from handover.pipelines.identity import (
    IdentityHints,
    ResolvedIdentity,
    first_path_segment,
    looks_like_stable_id,
    resolve_identity,
)

from conftest import make_handover


def test_hints_prefer_top_level_fields():
    hints = IdentityHints.from_payload(
        handover_id="h-top",
        metadata={"handover_id": "h-meta", "user_id": "u-meta", "file_path": "u/doc.pdf"},
    )
    assert hints.handover_id == "h-top"
    assert hints.user_id == "u-meta"
    assert hints.file_path == "u/doc.pdf"


def test_hints_without_metadata():
    hints = IdentityHints.from_payload()
    assert hints == IdentityHints()


def test_stable_id_shape():
    assert looks_like_stable_id("3f2b1c9e-8a7d-4e6f-9b1a-2c3d4e5f6a7b")
    assert not looks_like_stable_id("john.doe")
    assert not looks_like_stable_id(None)


def test_first_path_segment():
    assert first_path_segment("/abc/def/file.pdf") == "abc"
    assert first_path_segment("abc") == "abc"
    assert first_path_segment("///") is None
    assert first_path_segment(None) is None


async def test_email_is_resolved_case_insensitively(session, people):
    handover = await make_handover(session, people["employee"], people["successor"])

    identity = await resolve_identity(session, IdentityHints(user_id="John.Doe@Company.com"))

    assert identity.user_id == people["employee"].id
    assert identity.handover_id == handover.id


async def test_unknown_email_is_kept(session, people):
    identity = await resolve_identity(session, IdentityHints(user_id="ghost@company.com"))

    assert identity.user_id == "ghost@company.com"
    assert identity.handover_id is None


async def test_explicit_handover_id_is_not_replaced(session, people):
    await make_handover(session, people["employee"], people["successor"])

    identity = await resolve_identity(
        session, IdentityHints(handover_id="given", user_id=people["employee"].id)
    )

    assert identity.handover_id == "given"


async def test_employee_handover_wins_over_successor_handover(session, people):
    # The successor is also leaving and has their own handover
    taking_over = await make_handover(session, people["employee"], people["successor"])
    leaving = await make_handover(session, people["successor"], people["outsider"])

    identity = await resolve_identity(session, IdentityHints(user_id=people["successor"].id))

    assert identity.handover_id == leaving.id
    assert identity.handover_id != taking_over.id


async def test_successor_handover_is_found(session, people):
    handover = await make_handover(session, people["employee"], people["successor"])

    identity = await resolve_identity(session, IdentityHints(user_id=people["successor"].id))

    assert identity.handover_id == handover.id


async def test_newest_handover_is_picked(session, people):
    now = datetime.utcnow()
    await make_handover(session, people["employee"], created_at=now - timedelta(days=10))
    newest = await make_handover(session, people["employee"], people["successor"], created_at=now)

    identity = await resolve_identity(session, IdentityHints(user_id=people["employee"].id))

    assert identity.handover_id == newest.id


async def test_file_path_owner_fills_user_and_handover(session, people):
    handover = await make_handover(session, people["employee"], people["successor"])

    identity = await resolve_identity(
        session, IdentityHints(file_path=f"{people['employee'].id}/notes/handover.pdf")
    )

    assert identity.user_id == people["employee"].id
    assert identity.handover_id == handover.id


async def test_file_path_does_not_override_known_user(session, people):
    handover = await make_handover(session, people["employee"], people["successor"])

    identity = await resolve_identity(
        session,
        IdentityHints(user_id="ghost@company.com", file_path=f"{people['employee'].id}/doc.pdf"),
    )

    assert identity.user_id == "ghost@company.com"
    assert identity.handover_id == handover.id


async def test_file_path_without_stable_id_is_ignored(session, people):
    await make_handover(session, people["employee"], people["successor"])

    identity = await resolve_identity(session, IdentityHints(file_path="uploads/doc.pdf"))

    assert identity == ResolvedIdentity()


async def test_file_path_owner_without_handover_keeps_candidate(session, people):
    await make_handover(session, people["employee"], people["successor"])
    candidate = "123e4567-e89b-12d3-a456-426614174000"

    identity = await resolve_identity(session, IdentityHints(file_path=f"{candidate}/doc.pdf"))

    assert identity == ResolvedIdentity(handover_id=None, user_id=candidate)
