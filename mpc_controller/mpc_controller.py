import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import casadi as ca

from .exceptions import NoAcceptedGap, QPInfeasibleOrTimeout
from .vehicle_model import VehicleModel

logger = logging.getLogger(__name__)


class TrackingMode(Enum):
    TRACKING_WAYPOINT = 'tracking_waypoint'
    REACTIVE_AVOIDANCE = 'reactive_avoidance'


@dataclass(frozen=True)
class ControlCommand:
    steering_angle: float
    velocity: float


@dataclass
class TrackingResult:
    """Output of one control cycle."""
    command: ControlCommand
    predicted_states: np.ndarray
    mode: TrackingMode
    solved: bool
    safe_stop: bool = False
    reference: Optional[np.ndarray] = None


def wrap_angle(angle):
    return (angle + np.pi) % (2 * np.pi) - np.pi


class MPCController:
    """
    Receding-horizon trajectory tracker using successive linearization.

    Every cycle the vehicle model is linearized along an operating trajectory
    (the previous solution shifted by one step, or the reference inputs), the
    resulting affine dynamics are imposed as equality constraints of a QP and
    the QP is solved once. Only the first input of the solution is applied.

    The reference is either a target waypoint (TRACKING_WAYPOINT) or a ray along
    the reactive gap-following heading (REACTIVE_AVOIDANCE).
    """

    def __init__(self, vehicle_model: VehicleModel,
                 horizon: int = 10,
                 state_weights: Optional[np.ndarray] = None,
                 input_weights: Optional[np.ndarray] = None,
                 input_rate_weights: Optional[np.ndarray] = None,
                 terminal_state_weights: Optional[np.ndarray] = None,
                 default_speed: float = 1.0,
                 reactive_speed: float = 1.0,
                 braking_deceleration: float = 2.0,
                 max_consecutive_failures: int = 1,
                 solve_time_budget: Optional[float] = None,
                 qp_solver: str = 'qpoases',
                 solver_options: Optional[Dict] = None):
        """
        Initialize MPC controller.

        Args:
            vehicle_model: Vehicle dynamics model, its dt is the MPC time step
            horizon: Number of prediction steps
            state_weights: Weights on [x, y, theta] tracking error
            input_weights: Weights on [delta, v] deviation from the reference input
            input_rate_weights: Weights on consecutive input differences
            terminal_state_weights: Weights on the final state error (default: 2 * state_weights)
            default_speed: Target speed used when a waypoint carries none [m/s]
            reactive_speed: Minimum speed held along a reactive heading [m/s]
            braking_deceleration: Deceleration applied by the safe-stop command [m/s²]
            max_consecutive_failures: Solver failures answered by re-emitting the
                previous command before escalating to a safe stop
            solve_time_budget: Wall time allowed for one QP solve [s] (None = unbounded)
            qp_solver: CasADi conic plugin name
            solver_options: Extra options passed to the conic plugin
        """
        self.vehicle_model = vehicle_model
        self.N = horizon
        self.dt = vehicle_model.dt
        self.nx = vehicle_model.n_states
        self.nu = vehicle_model.n_inputs

        self.state_weights = np.array([10.0, 10.0, 1.0])  # [x, y, theta]
        self.input_weights = np.array([0.1, 0.5])  # [delta, v]
        self.input_rate_weights = np.array([1.0, 0.5])  # [delta, v]
        self.terminal_state_weights = None
        self.set_weights(
            state_weights if state_weights is not None else self.state_weights,
            input_weights if input_weights is not None else self.input_weights,
            terminal_state_weights,
            input_rate_weights,
        )

        self.default_speed = default_speed
        self.reactive_speed = reactive_speed
        self.braking_deceleration = braking_deceleration
        self.max_consecutive_failures = max_consecutive_failures
        self.solve_time_budget = solve_time_budget

        self.constraints = self._handle_constraints(vehicle_model.get_constraints())

        self.mode = TrackingMode.TRACKING_WAYPOINT
        self.last_command = None
        self.consecutive_failures = 0
        self._previous_inputs = None

        self.qp_solver = qp_solver
        self._setup_qp(solver_options or {})

    def _handle_constraints(self, constraints: Dict) -> Dict:
        """Replace None bounds by infinities for unconstrained behavior."""
        handled = {}
        for key, value in constraints.items():
            if value is None:
                handled[key] = -np.inf if 'min' in key else np.inf
            else:
                handled[key] = value
        return handled

    def _x(self, k: int) -> slice:
        return slice(k * self.nx, (k + 1) * self.nx)

    def _u(self, k: int) -> slice:
        offset = self.nx * (self.N + 1)
        return slice(offset + k * self.nu, offset + (k + 1) * self.nu)

    def _setup_qp(self, solver_options: Dict):
        """Create the conic solver for the fixed QP structure."""
        self.n_vars = self.nx * (self.N + 1) + self.nu * self.N
        self.n_rate_rows = self.N if np.isfinite(self.constraints['acceleration_max']) else 0
        self.n_cons = self.nx * self.N + self.n_rate_rows

        opts = {'error_on_fail': False}
        if self.qp_solver == 'qpoases':
            opts['printLevel'] = 'none'
            if self.solve_time_budget is not None:
                opts['CPUtime'] = self.solve_time_budget
        opts.update(solver_options)

        qp_structure = {
            'h': ca.Sparsity.dense(self.n_vars, self.n_vars),
            'a': ca.Sparsity.dense(self.n_cons, self.n_vars),
        }
        self.solver = ca.conic('mpc_qp', self.qp_solver, qp_structure, opts)

    def set_weights(self, state_weights: np.ndarray, input_weights: np.ndarray,
                    terminal_state_weights: Optional[np.ndarray] = None,
                    input_rate_weights: Optional[np.ndarray] = None):
        """
        Update cost function weights. Takes effect on the next cycle.

        Args:
            state_weights: State weights [x, y, theta]
            input_weights: Input weights [delta, v]
            terminal_state_weights: Terminal state weights (default: 2 * state_weights)
            input_rate_weights: Input rate weights [delta, v] (unchanged when omitted)
        """
        self.state_weights = np.asarray(state_weights, dtype=float)
        self.input_weights = np.asarray(input_weights, dtype=float)
        if terminal_state_weights is not None:
            self.terminal_state_weights = np.asarray(terminal_state_weights, dtype=float)
        else:
            self.terminal_state_weights = 2 * self.state_weights
        if input_rate_weights is not None:
            self.input_rate_weights = np.asarray(input_rate_weights, dtype=float)

    def get_prediction_horizon(self) -> float:
        """Get prediction horizon in seconds."""
        return self.N * self.dt

    def get_time_step(self) -> float:
        """Get time step."""
        return self.dt

    def reset(self):
        self.mode = TrackingMode.TRACKING_WAYPOINT
        self.last_command = None
        self.consecutive_failures = 0
        self._previous_inputs = None

    def _clip_velocity(self, velocity: float) -> float:
        return float(np.clip(velocity, self.constraints['velocity_min'], self.constraints['velocity_max']))

    def select_heading(self, headings: Sequence[float]) -> float:
        """Pick the accepted gap heading needing the least steering."""
        if len(headings) == 0:
            raise NoAcceptedGap("gap follower accepted no gap")
        return min(headings, key=abs)

    def _waypoint_reference(self, state: np.ndarray, target) -> Tuple[np.ndarray, np.ndarray]:
        """Reference advancing from the vehicle to the target at the target speed."""
        v_ref = self._clip_velocity(target.speed if target.speed > 0 else self.default_speed)
        start = state[:2]
        goal = np.array([target.x, target.y])
        distance = np.linalg.norm(goal - start)
        if distance > 1e-6:
            bearing = np.arctan2(goal[1] - start[1], goal[0] - start[0])
        else:
            bearing = target.heading

        x_ref = np.zeros((self.N + 1, self.nx))
        for k in range(self.N + 1):
            travelled = k * self.dt * v_ref
            if travelled < distance:
                x_ref[k, :2] = start + travelled / distance * (goal - start)
                heading = bearing
            else:
                x_ref[k, :2] = goal
                heading = target.heading
            x_ref[k, 2] = state[2] + wrap_angle(heading - state[2])

        u_ref = np.tile([0.0, v_ref], (self.N, 1))
        return x_ref, u_ref

    def _reactive_reference(self, state: np.ndarray, speed: float, heading: float) -> Tuple[np.ndarray, np.ndarray]:
        """Reference along the reactive heading, held at the current speed."""
        v_ref = self._clip_velocity(max(speed, self.reactive_speed))
        direction = state[2] + heading
        steps = np.arange(self.N + 1) * self.dt * v_ref

        x_ref = np.zeros((self.N + 1, self.nx))
        x_ref[:, 0] = state[0] + steps * np.cos(direction)
        x_ref[:, 1] = state[1] + steps * np.sin(direction)
        x_ref[:, 2] = direction

        u_ref = np.tile([0.0, v_ref], (self.N, 1))
        return x_ref, u_ref

    def _operating_inputs(self, u_ref: np.ndarray) -> np.ndarray:
        if self._previous_inputs is None:
            return u_ref.copy()
        return np.vstack([self._previous_inputs[1:], self._previous_inputs[-1:]])

    def _previous_input(self, speed: float) -> np.ndarray:
        if self.last_command is None:
            return np.array([0.0, self._clip_velocity(speed)])
        return np.array([self.last_command.steering_angle, self.last_command.velocity])

    def _build_qp(self, x0: np.ndarray, x_ref: np.ndarray, u_ref: np.ndarray,
                  x_op: np.ndarray, u_op: np.ndarray, u_prev: np.ndarray) -> Dict:
        """Assemble H, g, A and the bounds of the linearized tracking QP."""
        H = np.zeros((self.n_vars, self.n_vars))
        g = np.zeros(self.n_vars)

        Q = np.diag(self.state_weights)
        Qf = np.diag(self.terminal_state_weights)
        R = np.diag(self.input_weights)
        Rd = np.diag(self.input_rate_weights)

        # State tracking, x_0 is pinned so its term is constant
        for k in range(self.N + 1):
            W = Qf if k == self.N else Q
            H[self._x(k), self._x(k)] += 2 * W
            g[self._x(k)] -= 2 * W @ x_ref[k]

        for k in range(self.N):
            H[self._u(k), self._u(k)] += 2 * R
            g[self._u(k)] -= 2 * R @ u_ref[k]

            # Input rate, u_{-1} is the previously applied command
            H[self._u(k), self._u(k)] += 2 * Rd
            if k == 0:
                g[self._u(k)] -= 2 * Rd @ u_prev
            else:
                H[self._u(k - 1), self._u(k - 1)] += 2 * Rd
                H[self._u(k), self._u(k - 1)] -= 2 * Rd
                H[self._u(k - 1), self._u(k)] -= 2 * Rd

        A = np.zeros((self.n_cons, self.n_vars))
        lba = np.zeros(self.n_cons)
        uba = np.zeros(self.n_cons)

        for k in range(self.N):
            Ad, Bd, hd = self.vehicle_model.linearize(x_op[k], u_op[k])
            rows = slice(k * self.nx, (k + 1) * self.nx)
            A[rows, self._x(k + 1)] = np.eye(self.nx)
            A[rows, self._x(k)] = -Ad
            A[rows, self._u(k)] = -Bd
            lba[rows] = hd
            uba[rows] = hd

        if self.n_rate_rows:
            max_step = self.constraints['acceleration_max'] * self.dt
            for k in range(self.N):
                row = self.nx * self.N + k
                A[row, self._u(k).start + 1] = 1.0
                if k == 0:
                    lba[row] = u_prev[1] - max_step
                    uba[row] = u_prev[1] + max_step
                else:
                    A[row, self._u(k - 1).start + 1] = -1.0
                    lba[row] = -max_step
                    uba[row] = max_step

        lbx = np.full(self.n_vars, -np.inf)
        ubx = np.full(self.n_vars, np.inf)
        lbx[self._x(0)] = x0
        ubx[self._x(0)] = x0
        for k in range(self.N):
            lbx[self._u(k)] = [self.constraints['steering_min'], self.constraints['velocity_min']]
            ubx[self._u(k)] = [self.constraints['steering_max'], self.constraints['velocity_max']]

        return {'h': H, 'g': g, 'a': A, 'lba': lba, 'uba': uba, 'lbx': lbx, 'ubx': ubx}

    def _solve(self, x0: np.ndarray, x_ref: np.ndarray, u_ref: np.ndarray,
               u_op: np.ndarray, u_prev: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        x_op = self.vehicle_model.rollout(x0, u_op)
        qp = self._build_qp(x0, x_ref, u_ref, x_op, u_op, u_prev)

        start = time.perf_counter()
        try:
            solution = self.solver(**qp)
        except RuntimeError as error:
            raise QPInfeasibleOrTimeout(f"QP solver raised: {error}") from error
        elapsed = time.perf_counter() - start

        stats = self.solver.stats()
        if not stats.get('success', False):
            raise QPInfeasibleOrTimeout(f"QP solver returned status {stats.get('return_status')}")
        if self.solve_time_budget is not None and elapsed > self.solve_time_budget:
            raise QPInfeasibleOrTimeout(
                f"QP solve took {elapsed * 1e3:.1f} ms, budget is {self.solve_time_budget * 1e3:.1f} ms")

        z = np.array(solution['x']).flatten()
        states = z[:self.nx * (self.N + 1)].reshape(self.N + 1, self.nx)
        inputs = z[self.nx * (self.N + 1):].reshape(self.N, self.nu)
        return states, inputs

    def _safe_stop(self, state: np.ndarray, speed: float, reference: Optional[np.ndarray] = None) -> TrackingResult:
        velocity = max(0.0, speed - self.braking_deceleration * self.dt)
        command = ControlCommand(0.0, velocity)
        self.last_command = command
        self._previous_inputs = None
        predicted = self.vehicle_model.rollout(state, np.tile([0.0, velocity], (self.N, 1)))
        return TrackingResult(command, predicted, self.mode, solved=False, safe_stop=True, reference=reference)

    def _handle_failure(self, state: np.ndarray, speed: float, x_ref: np.ndarray,
                        u_op: np.ndarray, error: QPInfeasibleOrTimeout) -> TrackingResult:
        self.consecutive_failures += 1
        if self.last_command is not None and self.consecutive_failures <= self.max_consecutive_failures:
            logger.warning("%s, re-emitting previous command (failure %d)", error, self.consecutive_failures)
            predicted = self.vehicle_model.rollout(state, u_op)
            return TrackingResult(self.last_command, predicted, self.mode, solved=False, reference=x_ref)

        logger.error("%s after %d consecutive failures, commanding safe stop", error, self.consecutive_failures)
        return self._safe_stop(state, speed, x_ref)

    def track(self, state: np.ndarray, speed: float, target=None,
              reactive_headings: Sequence[float] = ()) -> TrackingResult:
        """
        Run one control cycle.

        Args:
            state: Current state [x, y, theta] in the map frame
            speed: Current longitudinal velocity [m/s]
            target: Selected waypoint (x, y, heading, speed), None when infeasible
            reactive_headings: Accepted gap headings relative to the vehicle [rad]

        Returns:
            TrackingResult with the command to apply and the predicted horizon
        """
        state = np.asarray(state, dtype=float)

        if target is not None:
            if self.mode is not TrackingMode.TRACKING_WAYPOINT:
                logger.info("Waypoint available again, resuming waypoint tracking")
            self.mode = TrackingMode.TRACKING_WAYPOINT
            x_ref, u_ref = self._waypoint_reference(state, target)
        else:
            if self.mode is not TrackingMode.REACTIVE_AVOIDANCE:
                logger.warning("No feasible waypoint, switching to reactive avoidance")
            self.mode = TrackingMode.REACTIVE_AVOIDANCE
            try:
                heading = self.select_heading(reactive_headings)
            except NoAcceptedGap as error:
                logger.error("%s, commanding safe stop", error)
                return self._safe_stop(state, speed)
            x_ref, u_ref = self._reactive_reference(state, speed, heading)

        u_prev = self._previous_input(speed)
        u_op = self._operating_inputs(u_ref)
        try:
            states, inputs = self._solve(state, x_ref, u_ref, u_op, u_prev)
        except QPInfeasibleOrTimeout as error:
            return self._handle_failure(state, speed, x_ref, u_op, error)

        self.consecutive_failures = 0
        self._previous_inputs = inputs
        self.last_command = ControlCommand(float(inputs[0, 0]), float(inputs[0, 1]))
        logger.debug("MPC command: steering=%.3f, velocity=%.3f (%s)",
                     self.last_command.steering_angle, self.last_command.velocity, self.mode.value)
        return TrackingResult(self.last_command, states, self.mode, solved=True, reference=x_ref)
