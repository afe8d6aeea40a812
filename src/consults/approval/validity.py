"""Approval validity predicates.

Two distinct questions are asked of an approval and they must not be merged:

* ``is_live_for_gate`` — may the customer add the product to a cart or have
  an order fulfilled right now? Only status and the stored expiry matter.
* ``is_fresh_for_reorder`` — is the customer still eligible to reorder? On
  top of the gate check, the approval must have been granted within the
  freshness window, regardless of a longer stored expiry.
"""

from datetime import timedelta

from consults.approval.approval import ApprovalStatus
from consults.config import get_config
from consults.utils.clock import as_utc, utc_now


def is_live_for_gate(approval, now=None) -> bool:
    if approval is None or approval.status != ApprovalStatus.APPROVED.value:
        return False
    now = as_utc(now) if now else utc_now()
    expires_at = as_utc(approval.expires_at)
    return expires_at is None or expires_at > now


def is_fresh_for_reorder(approval, now=None, window_days=None) -> bool:
    if approval is None or approval.status != ApprovalStatus.APPROVED.value:
        return False
    approved_at = as_utc(approval.approved_at)
    if approved_at is None:
        return False

    now = as_utc(now) if now else utc_now()
    window = timedelta(days=window_days if window_days is not None else get_config().freshness_window_days)
    if now - approved_at > window:
        return False

    expires_at = as_utc(approval.expires_at) or approved_at + window
    return expires_at > now
