"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the loan ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. atomicity.py - An operation changes state and funds together or not at all
2. reentrancy.py - No operation can start while another is in flight
3. state_machine.py - Status only moves forward; lender fixed once set
4. conservation.py - Custody holds exactly the unreleased collateral

These tests use hypothesis for property-based testing.
"""
