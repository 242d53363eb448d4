import copy
import unittest

from runner_deployer.models import DeploymentStatus, DeploymentStep, StepStatus
from runner_deployer.orchestrator import aggregate


def _steps(*statuses: StepStatus):
    return [
        DeploymentStep(step_order=i, step_name=f"s{i}", step_type="custom", command="true", status=status)
        for i, status in enumerate(statuses, 1)
    ]


class AggregateTests(unittest.TestCase):
    def test_any_failed_is_failed(self) -> None:
        steps = _steps(StepStatus.APPLIED, StepStatus.FAILED, StepStatus.PENDING)
        self.assertEqual(aggregate(steps), DeploymentStatus.FAILED)

    def test_all_terminal_without_failure_is_applied(self) -> None:
        steps = _steps(StepStatus.APPLIED, StepStatus.SKIPPED, StepStatus.APPLIED)
        self.assertEqual(aggregate(steps), DeploymentStatus.APPLIED)

    def test_pending_or_running_is_running(self) -> None:
        self.assertEqual(aggregate(_steps(StepStatus.APPLIED, StepStatus.PENDING)), DeploymentStatus.RUNNING)
        self.assertEqual(aggregate(_steps(StepStatus.RUNNING)), DeploymentStatus.RUNNING)

    def test_no_steps_is_applied(self) -> None:
        self.assertEqual(aggregate([]), DeploymentStatus.APPLIED)

    def test_pure_and_idempotent(self) -> None:
        steps = _steps(StepStatus.APPLIED, StepStatus.RUNNING, StepStatus.PENDING)
        before = copy.deepcopy(steps)
        first = aggregate(steps)
        second = aggregate(steps)
        self.assertEqual(first, second)
        self.assertEqual(steps, before)

    def test_accepts_generator(self) -> None:
        steps = _steps(StepStatus.APPLIED, StepStatus.APPLIED)
        self.assertEqual(aggregate(s for s in steps), DeploymentStatus.APPLIED)


if __name__ == "__main__":
    unittest.main()
