"""
Analytics over workflow instance history.

Aggregates live instances into completion metrics, per-step duration
bottlenecks, transition patterns and completion risk for open
instances. Durations are in seconds.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from stepflow.domain import WorkflowState, utcnow

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60

DEFAULT_COMPLETED_STEPS = frozenset({"completed", "delivered", "closed_satisfied"})
DEFAULT_CANCELLED_STEPS = frozenset({"cancelled", "closed_no_response"})
DEFAULT_BOTTLENECK_THRESHOLD_SECONDS = DAY_SECONDS

# Bottleneck impact levels: (average duration in seconds, stuck instances)
HIGH_IMPACT = (3 * DAY_SECONDS, 5)
MEDIUM_IMPACT = (DAY_SECONDS, 2)

# Share of moves out of a step that go backwards before it is flagged
REVERSAL_RATE_THRESHOLD = 20.0

DEFAULT_EXPECTED_COMPLETION_SECONDS = {
    "orderFulfillment": 7 * DAY_SECONDS,
    "supportTicket": 3 * DAY_SECONDS,
    "customClothingProduction": 14 * DAY_SECONDS,
}
FALLBACK_EXPECTED_COMPLETION_SECONDS = 7 * DAY_SECONDS

FORECAST_WINDOW_DAYS = 30
# Open instances in one step before more resources are suggested
HIGH_CONCURRENCY = 10


class AnalyticsEngine:
    """
    Read-only analytics over an instance store.

    Instances are classified by the name of their current step:
    `completed_steps` count as completed, `cancelled_steps` as cancelled,
    anything else as in progress. When a definition store is given, the
    declared step order is used to recognise backward transitions.
    """

    def __init__(
        self,
        instances,
        definitions=None,
        bottleneck_threshold_seconds: float = DEFAULT_BOTTLENECK_THRESHOLD_SECONDS,
        completed_steps: Iterable[str] = DEFAULT_COMPLETED_STEPS,
        cancelled_steps: Iterable[str] = DEFAULT_CANCELLED_STEPS,
        expected_completion_seconds: Optional[Mapping[str, float]] = None,
        clock: Callable = utcnow,
    ):
        self.instances = instances
        self.definitions = definitions
        self.bottleneck_threshold_seconds = bottleneck_threshold_seconds
        self.completed_steps = frozenset(completed_steps)
        self.cancelled_steps = frozenset(cancelled_steps)
        self.expected_completion_seconds = dict(
            expected_completion_seconds
            if expected_completion_seconds is not None
            else DEFAULT_EXPECTED_COMPLETION_SECONDS
        )
        self._clock = clock

    def _get_workflows(
        self,
        workflow_type: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[WorkflowState]:
        """Instances of a type, optionally limited to a creation window."""
        workflows = self.instances.list(workflow_type)
        if start_date is not None:
            workflows = [w for w in workflows if w.created_at >= start_date]
        if end_date is not None:
            workflows = [w for w in workflows if w.created_at <= end_date]
        return workflows

    def is_completed(self, state: WorkflowState) -> bool:
        return state.current_step in self.completed_steps

    def is_cancelled(self, state: WorkflowState) -> bool:
        return state.current_step in self.cancelled_steps

    def is_active(self, state: WorkflowState) -> bool:
        return not (self.is_completed(state) or self.is_cancelled(state))

    @staticmethod
    def completion_time(state: WorkflowState) -> float:
        """Seconds between the first and the last history entry."""
        if len(state.history) < 2:
            return 0.0
        return (state.history[-1].timestamp - state.history[0].timestamp).total_seconds()

    @staticmethod
    def dwell_time(state: WorkflowState, now: datetime) -> float:
        """Seconds spent in the current step so far."""
        return (now - (state.last_entry_at or state.created_at)).total_seconds()

    def get_workflow_metrics(
        self,
        workflow_type: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Completion counts for a workflow type."""
        workflows = self._get_workflows(workflow_type, start_date, end_date)

        completed = [w for w in workflows if self.is_completed(w)]
        cancelled = [w for w in workflows if self.is_cancelled(w)]
        total = len(workflows)

        completion_times = [t for t in (self.completion_time(w) for w in completed) if t > 0]
        average_completion_time = (
            sum(completion_times) / len(completion_times) if completion_times else 0.0
        )

        return {
            "total": total,
            "completed": len(completed),
            "inProgress": total - len(completed) - len(cancelled),
            "cancelled": len(cancelled),
            "averageCompletionTime": average_completion_time,
            "successRate": (len(completed) / total) * 100 if total else 0.0,
        }

    @staticmethod
    def impact_level(average_duration: float, workflows_stuck: int) -> str:
        if average_duration > HIGH_IMPACT[0] or workflows_stuck > HIGH_IMPACT[1]:
            return "high"
        if average_duration > MEDIUM_IMPACT[0] or workflows_stuck > MEDIUM_IMPACT[1]:
            return "medium"
        return "low"

    def analyze_bottlenecks(
        self,
        workflow_type: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """
        Per-step durations from consecutive history entries.

        Each delta is attributed to the step being entered. `workflowsStuck`
        counts open instances currently sitting in the step for longer
        than the bottleneck threshold. Results are sorted slowest first.
        """
        now = now or self._clock()
        step_durations: Dict[str, List[float]] = defaultdict(list)
        stuck_counts: Dict[str, int] = defaultdict(int)

        for workflow in self._get_workflows(workflow_type, start_date, end_date):
            history = workflow.history
            for previous, entry in zip(history, history[1:]):
                duration = (entry.timestamp - previous.timestamp).total_seconds()
                step_durations[entry.step_id].append(duration)

            if self.is_active(workflow) and self.dwell_time(workflow, now) > self.bottleneck_threshold_seconds:
                stuck_counts[workflow.current_step] += 1

        bottlenecks = []
        for step_id, durations in step_durations.items():
            average = sum(durations) / len(durations)
            bottlenecks.append({
                "stepId": step_id,
                "averageDuration": average,
                "maxDuration": max(durations),
                "count": len(durations),
                "workflowsStuck": stuck_counts[step_id],
                "impact": self.impact_level(average, stuck_counts[step_id]),
            })
        bottlenecks.sort(key=lambda b: b["averageDuration"], reverse=True)
        return bottlenecks

    def generate_optimization_recommendations(self, bottlenecks: List[Dict[str, Any]]) -> List[str]:
        """Suggestions for steps slower than the bottleneck threshold."""
        return [
            f'Step "{b["stepId"]}" takes too long on average. '
            f"Consider automation or process improvement."
            for b in bottlenecks
            if b["averageDuration"] > self.bottleneck_threshold_seconds
        ]

    def get_workflow_analytics(
        self,
        workflow_type: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Metrics, bottlenecks and recommendations in one report."""
        metrics = self.get_workflow_metrics(workflow_type, start_date, end_date)
        bottlenecks = self.analyze_bottlenecks(workflow_type, start_date, end_date)
        logger.debug(
            f"Analytics for {workflow_type}: {metrics['total']} instances, "
            f"{len(bottlenecks)} steps with history"
        )

        return {
            "metrics": metrics,
            "bottlenecks": bottlenecks,
            "recommendations": self.generate_optimization_recommendations(bottlenecks),
        }

    def _step_order(self, workflow_type: str) -> Dict[str, int]:
        if self.definitions is None or not self.definitions.has_definition(workflow_type):
            return {}
        steps = self.definitions.get_definition(workflow_type).step_ids
        return {step_id: index for index, step_id in enumerate(steps)}

    def detect_unusual_patterns(
        self,
        workflow_type: str,
        transition_counts: Mapping[str, Mapping[str, int]],
    ) -> List[str]:
        """
        Flag backward transitions taking more than 20% of a step's exits.

        A transition is backward when its target is declared before its
        source in the workflow definition.
        """
        order = self._step_order(workflow_type)
        patterns = []

        for source, targets in transition_counts.items():
            total = sum(targets.values())
            for target, count in targets.items():
                if source not in order or target not in order or order[target] >= order[source]:
                    continue
                percentage = count / total * 100
                if percentage > REVERSAL_RATE_THRESHOLD:
                    patterns.append(f"High reversal rate from {source} to {target} ({percentage:.1f}%)")

        return patterns

    def analyze_transition_patterns(self, workflow_type: str, limit: int = 10) -> Dict[str, Any]:
        """
        Count step-to-step moves across instances.

        `loopDetection` counts transitions that re-enter the same step.
        """
        transition_counts: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        loop_detection: Dict[str, int] = defaultdict(int)

        for workflow in self._get_workflows(workflow_type):
            for previous, entry in zip(workflow.history, workflow.history[1:]):
                transition_counts[previous.step_id][entry.step_id] += 1
                if previous.step_id == entry.step_id:
                    loop_detection[previous.step_id] += 1

        paths = [
            {"path": f"{source} -> {target}", "count": count}
            for source, targets in transition_counts.items()
            for target, count in targets.items()
        ]
        paths.sort(key=lambda p: p["count"], reverse=True)

        counts = {source: dict(targets) for source, targets in transition_counts.items()}
        return {
            "transitionCounts": counts,
            "loopDetection": dict(loop_detection),
            "mostCommonPaths": paths[:limit],
            "unusualPatterns": self.detect_unusual_patterns(workflow_type, counts),
        }

    def find_stuck_workflows(
        self,
        workflow_type: str,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Open instances whose current step has outlived the threshold."""
        now = now or self._clock()
        stuck = []

        for workflow in self._get_workflows(workflow_type):
            if not self.is_active(workflow):
                continue
            dwell = self.dwell_time(workflow, now)
            if dwell > self.bottleneck_threshold_seconds:
                stuck.append({
                    "workflowId": workflow.workflow_id,
                    "currentStep": workflow.current_step,
                    "stuckFor": dwell,
                })

        stuck.sort(key=lambda s: s["stuckFor"], reverse=True)
        return stuck

    def expected_completion_time(self, workflow_type: str) -> float:
        return self.expected_completion_seconds.get(workflow_type, FALLBACK_EXPECTED_COMPLETION_SECONDS)

    def assess_completion_risk(self, state: WorkflowState, now: datetime) -> str:
        """`high` past 1.5x the expected completion time, `medium` past 1x."""
        elapsed = (now - state.created_at).total_seconds()
        expected = self.expected_completion_time(state.workflow_type)
        if elapsed > expected * 1.5:
            return "high"
        if elapsed > expected:
            return "medium"
        return "low"

    def generate_predictive_analytics(
        self,
        workflow_type: str,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Estimated completion and risk level for every open instance, plus
        a demand forecast and resource recommendations.
        """
        now = now or self._clock()
        expected = self.expected_completion_time(workflow_type)
        predictions = []

        for workflow in self._get_workflows(workflow_type):
            if not self.is_active(workflow):
                continue
            elapsed = (now - workflow.created_at).total_seconds()
            remaining = max(0.0, expected - elapsed)
            predictions.append({
                "workflowId": workflow.workflow_id,
                "currentStep": workflow.current_step,
                "timeSpentSoFar": elapsed,
                "estimatedRemainingTime": remaining,
                "estimatedCompletionTime": (now + timedelta(seconds=remaining)).isoformat(),
                "riskLevel": self.assess_completion_risk(workflow, now),
            })

        return {
            "workflowType": workflow_type,
            "activePredictions": predictions,
            "demandForecast": self.forecast_demand(workflow_type, now),
            "resourceRecommendations": self.generate_resource_recommendations(predictions),
        }

    def forecast_demand(self, workflow_type: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Project new instances per week and month from the last 30 days.

        The trend compares the last 30 days with the 30 days before; a
        change of more than 10% either way is a trend.
        """
        now = now or self._clock()
        window = timedelta(days=FORECAST_WINDOW_DAYS)
        created = [w.created_at for w in self._get_workflows(workflow_type)]

        recent = sum(1 for c in created if c >= now - window)
        previous = sum(1 for c in created if now - 2 * window <= c < now - window)

        if recent > previous * 1.1:
            trend = "increasing"
        elif recent < previous * 0.9:
            trend = "decreasing"
        else:
            trend = "stable"

        daily_average = recent / FORECAST_WINDOW_DAYS
        return {
            "dailyAverage": daily_average,
            "projectedWeekly": daily_average * 7,
            "projectedMonthly": daily_average * 30,
            "trend": trend,
        }

    @staticmethod
    def generate_resource_recommendations(predictions: List[Dict[str, Any]]) -> List[str]:
        recommendations = []

        high_risk = sum(1 for p in predictions if p["riskLevel"] == "high")
        if high_risk:
            recommendations.append(
                f"{high_risk} workflows are at high risk of delay - consider resource reallocation"
            )

        per_step: Dict[str, int] = defaultdict(int)
        for prediction in predictions:
            per_step[prediction["currentStep"]] += 1
        for step_id, count in per_step.items():
            if count > HIGH_CONCURRENCY:
                recommendations.append(
                    f"High concurrency in {step_id} ({count} workflows) - consider additional resources"
                )

        return recommendations
