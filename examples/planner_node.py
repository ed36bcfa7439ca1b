#!/usr/bin/env python3
"""
ROS 2 node running the local planner.

Scan, odometry and map topics drive the Planner handlers; the drive command,
the obstacle grid and the MPC horizon are published back. Requires a ROS 2
installation (rclpy, tf2_ros, ackermann_msgs).
"""

import logging
import sys

import rclpy
from rclpy.duration import Duration
from rclpy.node import Node
from rclpy.qos import DurabilityPolicy, QoSProfile
from rclpy.time import Time
from tf2_ros import TransformException
from tf2_ros.buffer import Buffer
from tf2_ros.transform_listener import TransformListener

from ackermann_msgs.msg import AckermannDriveStamped
from geometry_msgs.msg import Point
from nav_msgs.msg import OccupancyGrid as OccupancyGridMsg, Odometry
from sensor_msgs.msg import LaserScan as LaserScanMsg
from visualization_msgs.msg import Marker

from local_planner import MalformedReferenceData, TransformProvider, TransformUnavailable, build_planner, load_config
from local_planner.conversions import grid_from_msg, scan_from_msg, state_from_odometry, transform_from_msg


class Tf2TransformProvider(TransformProvider):
    """tf2 lookups with a bounded wait."""

    def __init__(self, node: Node, timeout: float = 0.05):
        self.buffer = Buffer()
        self.listener = TransformListener(self.buffer, node)
        self.timeout = Duration(seconds=timeout)

    def lookup_transform(self, target_frame, source_frame):
        try:
            msg = self.buffer.lookup_transform(target_frame, source_frame, Time(), timeout=self.timeout)
        except TransformException as error:
            raise TransformUnavailable(str(error)) from error
        return transform_from_msg(msg)


class PlannerNode(Node):
    def __init__(self, config_path: str):
        super().__init__('local_planner')

        self.config = load_config(config_path)
        logging.basicConfig(level=self.config.log_level)
        self.transforms = Tf2TransformProvider(self)
        try:
            self.planner = build_planner(self.config, self.transforms)
        except MalformedReferenceData as error:
            self.get_logger().fatal(f"Cannot load reference paths: {error}")
            raise

        self.drive_pub = self.create_publisher(AckermannDriveStamped, self.config.drive_topic, 1)
        self.costmap_pub = self.create_publisher(OccupancyGridMsg, self.config.costmap_topic, 1)
        self.mpc_pub = self.create_publisher(Marker, self.config.mpc_topic, 1)
        self.waypoint_pub = self.create_publisher(Marker, self.config.waypoint_topic, 1)

        map_qos = QoSProfile(depth=1, durability=DurabilityPolicy.TRANSIENT_LOCAL)
        self.map_sub = self.create_subscription(OccupancyGridMsg, self.config.map_topic, self.map_callback, map_qos)
        self.scan_sub = self.create_subscription(LaserScanMsg, self.config.scan_topic, self.scan_callback, 1)
        self.odom_sub = self.create_subscription(Odometry, self.config.ego_odom, self.odom_callback, 1)
        self.opp_sub = self.create_subscription(Odometry, self.config.opp_odom, self.opp_odom_callback, 1)

        self.map_msg = None
        self.get_logger().info('Local planner initialized')

    def map_callback(self, msg):
        if self.planner.set_map(grid_from_msg(msg)):
            self.map_msg = msg

    def scan_callback(self, msg):
        grid = self.planner.on_scan(scan_from_msg(msg))
        if grid is None or self.map_msg is None:
            return
        costmap = OccupancyGridMsg()
        costmap.header.frame_id = self.config.map_frame
        costmap.header.stamp = msg.header.stamp
        costmap.info = self.map_msg.info
        costmap.data = grid.data.tolist()
        self.costmap_pub.publish(costmap)

    def odom_callback(self, msg):
        result = self.planner.on_odometry(state_from_odometry(msg))

        drive = AckermannDriveStamped()
        drive.header.stamp = msg.header.stamp
        drive.drive.steering_angle = result.command.steering_angle
        drive.drive.speed = result.command.velocity
        self.drive_pub.publish(drive)

        self.publish_horizon(result.predicted_states)
        if self.planner.target is not None:
            self.publish_waypoint(self.planner.target)

    def opp_odom_callback(self, msg):
        distance = self.planner.on_opponent_odometry()
        if distance is not None:
            self.get_logger().debug(f"Opponent at {distance:.2f} m")

    def _marker(self, marker_type, r, g, b):
        marker = Marker()
        marker.header.frame_id = self.config.map_frame
        marker.header.stamp = self.get_clock().now().to_msg()
        marker.type = marker_type
        marker.action = Marker.ADD
        marker.scale.x = marker.scale.y = marker.scale.z = 0.1
        marker.color.r, marker.color.g, marker.color.b, marker.color.a = r, g, b, 1.0
        marker.pose.orientation.w = 1.0
        return marker

    def publish_horizon(self, states):
        marker = self._marker(Marker.LINE_STRIP, 0.0, 0.0, 1.0)
        marker.points = [Point(x=float(x), y=float(y), z=0.0) for x, y, _ in states]
        self.mpc_pub.publish(marker)

    def publish_waypoint(self, waypoint):
        marker = self._marker(Marker.SPHERE, 1.0, 0.0, 0.0)
        marker.scale.x = marker.scale.y = marker.scale.z = 0.25
        marker.pose.position.x = waypoint.x
        marker.pose.position.y = waypoint.y
        self.waypoint_pub.publish(marker)


def main(args=None):
    rclpy.init(args=args)
    config_path = sys.argv[1] if len(sys.argv) > 1 else 'config/params.yaml'
    node = PlannerNode(config_path)
    try:
        rclpy.spin(node)
    except KeyboardInterrupt:
        pass
    finally:
        node.destroy_node()
        rclpy.shutdown()


if __name__ == '__main__':
    main()
