from .mpc_controller import ControlCommand, MPCController, TrackingMode, TrackingResult
from .vehicle_model import VehicleModel
from .exceptions import ControllerError, NoAcceptedGap, QPInfeasibleOrTimeout

__all__ = ['MPCController', 'VehicleModel', 'ControlCommand', 'TrackingMode', 'TrackingResult',
           'ControllerError', 'NoAcceptedGap', 'QPInfeasibleOrTimeout']
