import numpy as np
import casadi as ca
from typing import Dict, Optional, Tuple


class VehicleModel:
    """
    Kinematic bicycle model used by the trajectory tracker.

    State is [x, y, theta] in the map frame and the input is [delta, v]
    (steering angle and commanded velocity). The continuous model is
    discretized with RK4 and linearized symbolically so that every horizon
    step can be written as an affine equality constraint of a QP.
    """

    def __init__(self, wheelbase_front: float = 0.15875, wheelbase_rear: float = 0.17145,
                 max_steering: float = None, min_velocity: float = None, max_velocity: float = None,
                 max_acceleration: float = None, dt: float = 0.1):
        """
        Initialize vehicle model parameters.

        Args:
            wheelbase_front: Distance from center of gravity to front axle [m]
            wheelbase_rear: Distance from center of gravity to rear axle [m]
            max_steering: Maximum absolute steering angle [rad] (None = unconstrained)
            min_velocity: Minimum commanded velocity [m/s] (None = unconstrained)
            max_velocity: Maximum commanded velocity [m/s] (None = unconstrained)
            max_acceleration: Maximum change of commanded velocity per second [m/s²]
            dt: Discretization time step [s]
        """
        self.wheelbase_front = wheelbase_front
        self.wheelbase_rear = wheelbase_rear
        self.max_steering = max_steering
        self.min_velocity = min_velocity
        self.max_velocity = max_velocity
        self.max_acceleration = max_acceleration
        self.dt = dt

        # State and input dimensions
        self.n_states = 3  # [x, y, theta]
        self.n_inputs = 2  # [steering_angle, velocity]

        self._create_symbolic_model()

        self.discrete_dynamics = self.get_discrete_dynamics(dt)
        self._linearization = self._create_linearization(self.discrete_dynamics)
        self._discrete_dynamics_cache = {dt: self.discrete_dynamics}

    @property
    def wheelbase(self) -> float:
        return self.wheelbase_front + self.wheelbase_rear

    def _create_symbolic_model(self):
        """Create symbolic model using CasADi."""
        self.x = ca.SX.sym('x')
        self.y = ca.SX.sym('y')
        self.theta = ca.SX.sym('theta')

        self.state = ca.vertcat(self.x, self.y, self.theta)

        self.delta = ca.SX.sym('delta')  # steering angle
        self.v = ca.SX.sym('v')          # commanded velocity

        self.input = ca.vertcat(self.delta, self.v)

        # Slip angle at the center of gravity
        beta = ca.atan(self.wheelbase_rear * ca.tan(self.delta) / self.wheelbase)

        self.dynamics = ca.vertcat(
            self.v * ca.cos(self.theta + beta),                           # dx/dt
            self.v * ca.sin(self.theta + beta),                           # dy/dt
            self.v * ca.cos(beta) * ca.tan(self.delta) / self.wheelbase,  # dtheta/dt
        )

    def get_discrete_dynamics(self, dt: float) -> ca.Function:
        """
        Get discrete-time dynamics using RK4 integration.

        Args:
            dt: Time step for discretization

        Returns:
            CasADi function (state, input) -> next state
        """
        k1 = self.dynamics
        k2 = ca.substitute(self.dynamics, self.state, self.state + dt/2 * k1)
        k3 = ca.substitute(self.dynamics, self.state, self.state + dt/2 * k2)
        k4 = ca.substitute(self.dynamics, self.state, self.state + dt * k3)

        state_next = self.state + dt/6 * (k1 + 2*k2 + 2*k3 + k4)

        return ca.Function('discrete_dynamics',
                           [self.state, self.input],
                           [state_next])

    def _create_linearization(self, discrete_dynamics: ca.Function) -> ca.Function:
        state_next = discrete_dynamics(self.state, self.input)
        return ca.Function('linearized_dynamics',
                           [self.state, self.input],
                           [ca.jacobian(state_next, self.state),
                            ca.jacobian(state_next, self.input),
                            state_next])

    def propagate(self, state: np.ndarray, control: np.ndarray, dt: Optional[float] = None) -> np.ndarray:
        """
        Propagate the nonlinear model by one time step.

        Args:
            state: Current state [x, y, theta]
            control: Control input [delta, v]
            dt: Time step, the model's own step when omitted

        Returns:
            Next state
        """
        if dt is None:
            dt = self.dt
        if dt not in self._discrete_dynamics_cache:
            self._discrete_dynamics_cache[dt] = self.get_discrete_dynamics(dt)
        return np.array(self._discrete_dynamics_cache[dt](state, control)).flatten()

    def rollout(self, state: np.ndarray, controls: np.ndarray) -> np.ndarray:
        """Roll the model out over a control sequence, returns (N+1, n_states)."""
        states = np.zeros((len(controls) + 1, self.n_states))
        states[0] = state
        for k, control in enumerate(controls):
            states[k + 1] = self.propagate(states[k], control)
        return states

    def linearize(self, x_op: np.ndarray, u_op: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Linearize the discrete dynamics about an operating point.

        Returns Ad, Bd and hd such that next_state ≈ Ad @ x + Bd @ u + hd, with
        equality at (x_op, u_op).

        Args:
            x_op: Operating state [x, y, theta]
            u_op: Operating input [delta, v]

        Returns:
            Tuple (Ad, Bd, hd) with shapes (nx, nx), (nx, nu), (nx,)
        """
        x_op = np.asarray(x_op, dtype=float)
        u_op = np.asarray(u_op, dtype=float)
        Ad, Bd, f_op = self._linearization(x_op, u_op)
        Ad = np.array(Ad)
        Bd = np.array(Bd)
        hd = np.array(f_op).flatten() - Ad @ x_op - Bd @ u_op
        return Ad, Bd, hd

    def get_constraints(self) -> Dict:
        """Get input constraints. None values indicate unconstrained."""
        return {
            'steering_min': -self.max_steering if self.max_steering is not None else None,
            'steering_max': self.max_steering,
            'velocity_min': self.min_velocity,
            'velocity_max': self.max_velocity,
            'acceleration_max': self.max_acceleration,
        }
