# Standard constant tables shipped with the encoder
