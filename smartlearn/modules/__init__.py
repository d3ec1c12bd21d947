# Feature modules
