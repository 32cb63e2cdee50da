import itertools
import unittest

from portal.core.errors import InvalidTransition
from portal.db.models import ROLE_CLIENT, ROLE_STAFF, ROLE_SYSTEM
from portal.requests import state_machine as sm
from portal.requests.state_machine import PaymentStatus, RequestAction, RequestStatus

EXPECTED = {
    (RequestStatus.PENDING_PAYMENT, RequestAction.CONFIRM_PAYMENT, ROLE_SYSTEM): RequestStatus.REQUESTED,
    (RequestStatus.PENDING_PAYMENT, RequestAction.FLAG_PAYMENT_REVIEW, ROLE_SYSTEM): RequestStatus.PAYMENT_UNDER_REVIEW,
    (RequestStatus.PAYMENT_UNDER_REVIEW, RequestAction.CONFIRM_PAYMENT, ROLE_SYSTEM): RequestStatus.REQUESTED,
    (RequestStatus.REQUESTED, RequestAction.VIEW, ROLE_STAFF): RequestStatus.VIEWED,
    (RequestStatus.REQUESTED, RequestAction.START, ROLE_STAFF): RequestStatus.IN_PROGRESS,
    (RequestStatus.VIEWED, RequestAction.START, ROLE_STAFF): RequestStatus.IN_PROGRESS,
    (RequestStatus.IN_PROGRESS, RequestAction.SEND_FOR_VALIDATION, ROLE_STAFF): RequestStatus.IN_VALIDATION,
    (RequestStatus.IN_VALIDATION, RequestAction.APPROVE, ROLE_CLIENT): RequestStatus.RESOLVED,
    (RequestStatus.RESOLVED, RequestAction.REOPEN, ROLE_CLIENT): RequestStatus.REQUESTED,
}


class TransitionTableTests(unittest.TestCase):
    def test_every_combination_matches_table(self):
        for state, action, role in itertools.product(RequestStatus, RequestAction, sm.ROLES):
            allowed = (state, action, role) in EXPECTED
            with self.subTest(state=state.value, action=action.value, role=role):
                self.assertEqual(sm.is_allowed(state.value, action.value, role), allowed)
                if allowed:
                    transition = sm.resolve_transition(state.value, action.value, role)
                    self.assertEqual(transition.target, EXPECTED[(state, action, role)])
                else:
                    with self.assertRaises(InvalidTransition):
                        sm.resolve_transition(state.value, action.value, role)

    def test_invalid_transition_names_state_target_and_role(self):
        with self.assertRaises(InvalidTransition) as ctx:
            sm.resolve_transition("pending_payment", "approve", ROLE_CLIENT)
        err = ctx.exception
        self.assertEqual(err.current, "pending_payment")
        self.assertEqual(err.requested, "resolved")
        self.assertEqual(err.role, ROLE_CLIENT)
        self.assertIn("pending_payment", err.message)
        self.assertEqual(err.to_detail()["code"], "invalid_transition")

    def test_unknown_action_is_rejected(self):
        self.assertFalse(sm.is_allowed("requested", "teleport", ROLE_STAFF))
        with self.assertRaises(InvalidTransition):
            sm.resolve_transition("requested", "teleport", ROLE_STAFF)

    def test_reopen_always_returns_to_requested(self):
        transition = sm.resolve_transition("resolved", "reopen", ROLE_CLIENT)
        self.assertEqual(transition.target, RequestStatus.REQUESTED)
        self.assertEqual(transition.audit_action, "Reopened")

    def test_payment_rows_set_payment_status(self):
        confirm = sm.resolve_transition("pending_payment", "confirm_payment", ROLE_SYSTEM)
        review = sm.resolve_transition("pending_payment", "flag_payment_review", ROLE_SYSTEM)
        self.assertEqual(confirm.payment_status, PaymentStatus.APPROVED)
        self.assertEqual(review.payment_status, PaymentStatus.UNDER_REVIEW)

    def test_allowed_actions_per_role(self):
        self.assertEqual(sm.allowed_actions("requested", ROLE_STAFF), ["view", "start"])
        self.assertEqual(sm.allowed_actions("requested", ROLE_CLIENT), [])
        self.assertEqual(sm.allowed_actions("in_validation", ROLE_CLIENT), ["approve"])

    def test_initial_state_follows_price(self):
        self.assertEqual(sm.initial_state(150), (RequestStatus.PENDING_PAYMENT, PaymentStatus.PENDING))
        self.assertEqual(sm.initial_state(0), (RequestStatus.REQUESTED, PaymentStatus.NOT_APPLICABLE))


if __name__ == "__main__":
    unittest.main()
