import unittest

from garage import create_app
from garage.config import TestingConfig
from garage.extensions import db
from garage.models import Company, Role, StatusMessage, WorkflowLevel
from garage.services import status_service, workflow_config_service
from garage.services.workflow_engine import LevelConfig, WorkflowConfigurationError


PROCESS = "Purchase Return Request"


class WorkflowConfigServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app(TestingConfig)
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(StatusMessage).delete()
        db.session.query(WorkflowLevel).delete()
        db.session.query(Role).delete()
        db.session.query(Company).delete()
        db.session.commit()

        self.company = Company(name="Test Garage", code="TEST")
        self.other = Company(name="Other Garage", code="OTHER")
        db.session.add_all([self.company, self.other])
        db.session.flush()

        self.manager = Role(company_id=self.company.id, name="Store Manager")
        self.finance = Role(company_id=self.company.id, name="Finance")
        self.foreign = Role(company_id=self.other.id, name="Store Manager")
        db.session.add_all([self.manager, self.finance, self.foreign])
        db.session.commit()

    def test_add_level_appends_on_top(self):
        first = workflow_config_service.add_level(self.company.id, PROCESS, self.manager.id, override_enabled=True)
        second = workflow_config_service.add_level(self.company.id, PROCESS, self.finance.id)
        db.session.commit()

        self.assertEqual(first.level, 1)
        self.assertEqual(second.level, 2)
        self.assertTrue(first.override_enabled)
        self.assertFalse(second.override_enabled)

        levels = workflow_config_service.get_levels(self.company.id, PROCESS)
        self.assertEqual([level.id for level in levels], [first.id, second.id])

    def test_ladders_are_per_process_and_company(self):
        workflow_config_service.add_level(self.company.id, PROCESS, self.manager.id)
        workflow_config_service.add_level(self.other.id, PROCESS, self.foreign.id)
        other_process = workflow_config_service.add_level(self.company.id, "Stock Transfer", self.finance.id)
        db.session.commit()

        self.assertEqual(other_process.level, 1)
        self.assertEqual(len(workflow_config_service.get_levels(self.company.id, PROCESS)), 1)

    def test_add_level_rejects_foreign_role(self):
        with self.assertRaises(WorkflowConfigurationError):
            workflow_config_service.add_level(self.company.id, PROCESS, self.foreign.id)

    def test_inactive_levels_are_skipped(self):
        level = workflow_config_service.add_level(self.company.id, PROCESS, self.manager.id)
        level.is_active = False
        db.session.commit()

        self.assertEqual(workflow_config_service.load_level_configs(self.company.id, PROCESS), [])

    def test_validate_contiguous(self):
        workflow_config_service.validate_contiguous([
            LevelConfig(id=1, level=1, role_id=1),
            LevelConfig(id=2, level=2, role_id=2),
        ])

        with self.assertRaises(WorkflowConfigurationError):
            workflow_config_service.validate_contiguous([
                LevelConfig(id=1, level=1, role_id=1),
                LevelConfig(id=3, level=3, role_id=3),
            ])
        with self.assertRaises(WorkflowConfigurationError):
            workflow_config_service.validate_contiguous([
                LevelConfig(id=1, level=1, role_id=1),
                LevelConfig(id=2, level=1, role_id=2),
            ])


class StatusServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app(TestingConfig)
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(StatusMessage).delete()
        db.session.query(Company).delete()
        db.session.commit()

        self.company = Company(name="Test Garage", code="TEST")
        db.session.add(self.company)
        db.session.commit()

    def _status(self, sub_category, value):
        row = StatusMessage(
            company_id=self.company.id,
            category_id=status_service.status_category(),
            sub_category_id=sub_category,
            value=value,
        )
        db.session.add(row)
        db.session.commit()
        return row

    def test_missing_status_is_a_configuration_error(self):
        with self.assertRaises(WorkflowConfigurationError):
            status_service.resolve_status(self.company.id, "APPROVAL_PENDING", 1)

    def test_level_specific_row_wins(self):
        self._status("APPROVAL_PENDING", "Level 1 Approval Pending")
        level_two = self._status("APPROVAL_PENDING", "Level 2 Approval Pending")
        self._status("APPROVAL_PENDING", "Level {@} Approval Pending")

        self.assertEqual(status_service.resolve_status(self.company.id, "APPROVAL_PENDING", 2).id, level_two.id)

    def test_level_one_does_not_match_level_ten(self):
        self._status("APPROVAL_PENDING", "Level 10 Approval Pending")
        placeholder = self._status("APPROVAL_PENDING", "Level {@} Approval Pending")

        resolved = status_service.resolve_status(self.company.id, "APPROVAL_PENDING", 1)
        self.assertEqual(resolved.id, placeholder.id)
        self.assertEqual(status_service.render(resolved, 1), "Level 1 Approval Pending")

    def test_single_row_is_used_for_any_level(self):
        only = self._status("APPROVER_COMPLETED", "Approval Completed")
        self.assertEqual(status_service.resolve_status(self.company.id, "APPROVER_COMPLETED").id, only.id)


if __name__ == "__main__":
    unittest.main()
