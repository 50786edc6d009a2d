"""
Tests for audit.py - append-only log and its counters
"""
import threading

from audit import audit_count, get_audit_entries, record_audit, reset_audit_log


class TestAuditCount:

    def test_count_follows_reset(self):
        reset_audit_log()
        assert audit_count() == 0
        record_audit("SETTING_UPDATE", "DEP", "DEP-ICU")
        assert audit_count() == 1

    def test_count_matches_entries_under_concurrent_writers(self):
        reset_audit_log()

        def write_entries():
            for _ in range(200):
                record_audit("BED_CLEANED", "BED", "BED-3002B")

        threads = [threading.Thread(target=write_entries) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert audit_count() == 800
        assert len(get_audit_entries()) == 800
