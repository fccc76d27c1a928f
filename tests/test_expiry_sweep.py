import sys
import os
import unittest
from datetime import timedelta
from unittest.mock import patch

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fakes import NOW, DatabaseTestCase, fixed_clock
from models.staff_member import StaffMember
from services.errors import UpstreamError
from services.expiry_sweep import ExpirySweep


class TestExpirySweep(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.sweep = ExpirySweep(self.Session, fixed_clock, max_workers=1)

    def staff_of(self, professional_id):
        return (
            self.fresh_session()
            .query(StaffMember)
            .filter(StaffMember.professional_id == professional_id)
            .order_by(StaffMember.id)
            .all()
        )

    def test_nothing_to_do(self):
        self.make_professional()
        result = self.sweep.run()
        self.assertEqual(result["totalProcessed"], 0)
        self.assertEqual(result["results"], [])

    def test_expired_bizness_account(self):
        pro = self.make_professional(
            plan="bizness",
            subscription_status="active",
            subscription_end_date=NOW - timedelta(hours=2),
            stripe_subscription_id="sub_biz",
            subscription_will_renew=True,
        )
        self.set_credits(pro.id, 4200)
        self.open_history(pro.id, "bizness", "sub_biz", started_at=NOW - timedelta(days=30))
        # created out of id order; the earliest created one is kept
        self.add_staff(pro.id, "Second", NOW - timedelta(days=10))
        self.add_staff(pro.id, "First", NOW - timedelta(days=40))
        self.add_staff(pro.id, "Third", NOW - timedelta(days=5))

        result = self.sweep.run()

        self.assertEqual(result["totalProcessed"], 1)
        self.assertEqual(result["succeeded"], 1)
        self.assertEqual(result["failed"], 0)
        self.assertEqual(result["results"][0], {
            "professionalId": pro.id,
            "success": True,
            "previousPlan": "bizness",
            "staffDeactivated": 2,
        })

        reloaded = self.reload(pro.id)
        self.assertEqual(reloaded.plan, "free")
        self.assertEqual(reloaded.subscription_status, "inactive")
        self.assertIsNone(reloaded.subscription_end_date)
        self.assertIsNone(reloaded.stripe_subscription_id)
        self.assertEqual(reloaded.subscription_last_changed, NOW)
        self.assertEqual(self.credits_of(pro.id), 0)
        self.assertEqual([h.ended_at for h in self.history_of(pro.id)], [NOW])

        staff = {m.name: m.is_active for m in self.staff_of(pro.id)}
        self.assertEqual(staff, {"First": True, "Second": False, "Third": False})

    def test_earliest_inactive_member_does_not_take_the_slot(self):
        pro = self.make_professional(plan="bizness", subscription_status="active",
                                     subscription_end_date=NOW - timedelta(days=1))
        self.add_staff(pro.id, "Left", NOW - timedelta(days=90), is_active=False)
        self.add_staff(pro.id, "Anna", NOW - timedelta(days=30))
        self.add_staff(pro.id, "Liga", NOW - timedelta(days=20))

        result = self.sweep.run()

        self.assertEqual(result["results"][0]["staffDeactivated"], 1)
        staff = {m.name: m.is_active for m in self.staff_of(pro.id)}
        self.assertEqual(staff, {"Left": False, "Anna": True, "Liga": False})

    def test_second_run_changes_nothing(self):
        pro = self.make_professional(plan="pro", subscription_status="active",
                                     subscription_end_date=NOW - timedelta(days=1))
        self.set_credits(pro.id, 12)
        self.add_staff(pro.id, "A", NOW - timedelta(days=3))
        self.add_staff(pro.id, "B", NOW - timedelta(days=2))

        self.sweep.run()
        before = self.reload(pro.id)
        second = self.sweep.run()

        self.assertEqual(second["totalProcessed"], 0)
        after = self.reload(pro.id)
        self.assertEqual(after.subscription_last_changed, before.subscription_last_changed)
        self.assertEqual(after.plan, "free")
        self.assertEqual(len([m for m in self.staff_of(pro.id) if m.is_active]), 1)

    def test_already_handled_account_is_a_no_op(self):
        pro = self.make_professional(plan="pro", subscription_status="active",
                                     subscription_end_date=NOW - timedelta(days=1))
        self.sweep.run()

        # An overlapping run that selected the account before the first run committed
        result = self.sweep.expire_one(pro.id, NOW)
        self.assertEqual(result, {"professionalId": pro.id, "success": True, "skipped": True})

    def test_selection_filter(self):
        expired = self.make_professional(plan="starteris", subscription_status="active",
                                         subscription_end_date=NOW - timedelta(minutes=1))
        self.make_professional(plan="starteris", subscription_status="active",
                               subscription_end_date=NOW + timedelta(days=1))
        self.make_professional(plan="starteris", subscription_status="canceled_at_period_end",
                               subscription_end_date=NOW - timedelta(days=1))
        self.make_professional(plan="free", subscription_status="active",
                               subscription_end_date=NOW - timedelta(days=1))
        self.make_professional(plan="pro", subscription_status="active", subscription_end_date=None)

        self.assertEqual(self.sweep.find_expired(NOW), [expired.id])

    def test_one_failure_does_not_abort_the_sweep(self):
        first = self.make_professional(plan="pro", subscription_status="active",
                                       subscription_end_date=NOW - timedelta(days=1))
        second = self.make_professional(plan="starteris", subscription_status="active",
                                        subscription_end_date=NOW - timedelta(days=2))

        def flaky_staff(db, professional_id, keep=1):
            if professional_id == first.id:
                raise RuntimeError("database went away")
            return 0

        with patch("services.expiry_sweep.deactivate_excess_staff", side_effect=flaky_staff):
            result = self.sweep.run()

        self.assertEqual(result["totalProcessed"], 2)
        self.assertEqual(result["succeeded"], 1)
        self.assertEqual(result["failed"], 1)
        failure = next(r for r in result["results"] if not r["success"])
        self.assertEqual(failure["professionalId"], first.id)
        self.assertIn("database went away", failure["error"])

        # rolled back as a whole
        self.assertEqual(self.reload(first.id).plan, "pro")
        self.assertEqual(self.reload(second.id).plan, "free")

    def test_concurrent_workers(self):
        ids = [
            self.make_professional(plan="pro", subscription_status="active",
                                   subscription_end_date=NOW - timedelta(days=i + 1)).id
            for i in range(4)
        ]
        result = ExpirySweep(self.Session, fixed_clock, max_workers=4).run()
        self.assertEqual(result["succeeded"], 4)
        self.assertEqual(sorted(r["professionalId"] for r in result["results"]), sorted(ids))

    def test_query_failure(self):
        with patch.object(ExpirySweep, "find_expired", side_effect=RuntimeError("no connection")):
            with self.assertRaises(UpstreamError):
                self.sweep.run()


if __name__ == "__main__":
    unittest.main()
