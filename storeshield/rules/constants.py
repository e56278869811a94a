"""Shared App Store constants used by several rules."""

PRIVACY_PERMISSION_KEYS = [
    "NSCameraUsageDescription",
    "NSLocationWhenInUseUsageDescription",
    "NSLocationAlwaysAndWhenInUseUsageDescription",
    "NSLocationAlwaysUsageDescription",
    "NSPhotoLibraryUsageDescription",
    "NSPhotoLibraryAddUsageDescription",
    "NSMicrophoneUsageDescription",
    "NSContactsUsageDescription",
    "NSCalendarsUsageDescription",
    "NSRemindersUsageDescription",
    "NSMotionUsageDescription",
    "NSHealthUpdateUsageDescription",
    "NSHealthShareUsageDescription",
    "NSBluetoothAlwaysUsageDescription",
    "NSBluetoothPeripheralUsageDescription",
    "NSUserTrackingUsageDescription",
    "NSSpeechRecognitionUsageDescription",
    "NSFaceIDUsageDescription",
    "NSLocalNetworkUsageDescription",
]

PRIVACY_MANIFEST_DOCS = "https://developer.apple.com/documentation/bundleresources/privacy_manifest_files"

APP_NAME_MAX_LENGTH = 30
KEYWORDS_MAX_LENGTH = 100
DESCRIPTION_MIN_LENGTH = 100
