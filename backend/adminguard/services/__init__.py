"""Domain services for the admin security core"""
