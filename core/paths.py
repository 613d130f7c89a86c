import os

# 项目根目录：core/paths.py 向上两级
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# 统一配置目录（运行期生成，不随代码发布）
CONFIG_DIR = os.path.join(PROJECT_ROOT, ".config")
# 场地 Tag 布局等静态资源（随代码发布）
ASSETS_DIR = os.path.join(PROJECT_ROOT, "assets")
LOG_DIR = os.path.join(PROJECT_ROOT, ".log")

LOCALIZATION_CONFIG_PATH = os.path.join(CONFIG_DIR, "localization_config.json")
CAMERA_POSE_PATH         = os.path.join(CONFIG_DIR, "camera_pose.json")
APRILTAG_POSE_PATH       = os.path.join(ASSETS_DIR, "apriltag_pose.json")
